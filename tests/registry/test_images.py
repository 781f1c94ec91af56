from __future__ import annotations

from io import BytesIO

from PIL import Image

from qr_offers.registry.images import build_token_url, render_qr_data_url, render_qr_png


def test_build_token_url_joins_base_without_double_slash() -> None:
    assert (
        build_token_url(public_base_url="https://offers.example/", token_id="QRABCD2345")
        == "https://offers.example/qr/redirect/QRABCD2345"
    )


def test_render_qr_png_returns_decodable_png() -> None:
    png = render_qr_png("https://offers.example/qr/redirect/QRABCD2345")

    assert png.startswith(b"\x89PNG")
    with Image.open(BytesIO(png)) as image:
        assert image.format == "PNG"
        assert image.size[0] == image.size[1]


def test_render_qr_data_url_embeds_png() -> None:
    data_url = render_qr_data_url("QRABCD2345")

    assert data_url.startswith("data:image/png;base64,")
