from __future__ import annotations

import argparse
import asyncio
import csv
from pathlib import Path

from qr_offers.core.config import get_settings
from qr_offers.db.session import SessionLocal
from qr_offers.registry.batch import validate_batch_request
from qr_offers.registry.images import build_token_url, render_qr_png
from qr_offers.registry.service import TokenRegistry
from qr_offers.registry.types import GeneratedBatch, LayoutVariant


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="QR token batch generation tool")
    parser.add_argument("--count", type=int, required=True)
    parser.add_argument(
        "--layout-variant",
        choices=[variant.value for variant in LayoutVariant],
        default=LayoutVariant.LAYOUT1.value,
    )
    parser.add_argument("--created-by", required=True)
    parser.add_argument("--output-csv", type=Path)
    parser.add_argument("--images-dir", type=Path, help="write one PNG per token")
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace, *, max_count: int) -> None:
    validate_batch_request(
        count=args.count,
        layout_variant=args.layout_variant,
        max_count=max_count,
    )
    if not args.created_by.strip():
        raise ValueError("--created-by must not be empty")


async def _generate(args: argparse.Namespace, *, max_count: int) -> GeneratedBatch:
    async with SessionLocal.begin() as session:
        return await TokenRegistry.generate_batch(
            session,
            count=args.count,
            layout_variant=args.layout_variant,
            created_by=args.created_by.strip(),
            max_count=max_count,
        )


def _write_output(path: Path, batch: GeneratedBatch, *, public_base_url: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as file:
        writer = csv.writer(file)
        writer.writerow(["token_id", "batch_id", "layout_variant", "url"])
        for token_id in batch.token_ids:
            writer.writerow(
                [
                    token_id,
                    batch.batch_id,
                    batch.layout_variant.value,
                    build_token_url(public_base_url=public_base_url, token_id=token_id),
                ]
            )


def _write_images(directory: Path, batch: GeneratedBatch, *, public_base_url: str) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for token_id in batch.token_ids:
        url = build_token_url(public_base_url=public_base_url, token_id=token_id)
        (directory / f"{token_id}.png").write_bytes(render_qr_png(url))


async def _run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    _validate_args(args, max_count=settings.qr_batch_max_count)
    batch = await _generate(args, max_count=settings.qr_batch_max_count)

    output_csv = args.output_csv or Path(f"reports/qr_batch_{batch.batch_id}.csv")
    _write_output(output_csv, batch, public_base_url=settings.public_base_url)
    if args.images_dir is not None:
        _write_images(args.images_dir, batch, public_base_url=settings.public_base_url)

    print(  # noqa: T201
        f"batch_id={batch.batch_id} generated={len(batch.token_ids)} output={output_csv}"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(argv))


if __name__ == "__main__":
    raise SystemExit(main())
