# cli.py
import asyncio
import json
import logging
from dataclasses import asdict, replace
from pathlib import Path

import cv2
import typer

from chart_watch.config import PipelineConfig
from chart_watch.frames import image_frames, list_images, video_frames
from chart_watch.pipeline import ChartPipeline
from chart_watch.sinks import JsonlCandleStore, RowLogger

app = typer.Typer()


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _jsonable(obj):
    if hasattr(obj, "value"):
        return obj.value
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    return str(obj)


@app.command()
def watch(
    source: str,
    interval: float = typer.Option(None, help="Seconds between processed frames."),
    ocr: str = typer.Option(None, help="OCR engine: rapid, paddle or tesseract."),
    store: Path = typer.Option(None, help="JSONL file for accepted candles."),
    dry_run: bool = typer.Option(True, "--dry-run/--live", help="Only log sheet rows."),
    fps: float = typer.Option(6.0, help="Replay rate when SOURCE is a folder of images."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Watch a video file, camera index or image folder and print accepted candles."""
    _setup_logging(verbose)
    config = PipelineConfig.from_env()
    overrides = {"dry_run": dry_run}
    if interval is not None:
        overrides["sample_interval"] = interval
    if ocr is not None:
        overrides["ocr_engine"] = ocr
    if store is not None:
        overrides["store_path"] = str(store)
    config = replace(config, **overrides)

    pipeline = ChartPipeline(
        config,
        store=JsonlCandleStore(config.store_path) if config.store_path else None,
        row_logger=RowLogger(dry_run=config.dry_run),
    )
    if Path(source).is_dir():
        frames = image_frames(list_images(source), fps=fps)
    else:
        frames = video_frames(source)

    def on_outcome(outcome):
        if outcome.candle is not None:
            print(json.dumps(outcome.candle.to_dict(), ensure_ascii=False))

    candles = asyncio.run(pipeline.run(frames, on_outcome))
    typer.echo(f"{len(candles)} candle(s) emitted from {pipeline.frame_count} frame(s)", err=True)


@app.command()
def inspect(
    image: Path,
    ocr: str = typer.Option("rapid", help="OCR engine: rapid, paddle or tesseract."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Run one screenshot through every stage and dump what each one saw."""
    _setup_logging(verbose)
    frame = cv2.imread(str(image))
    if frame is None:
        raise typer.BadParameter(f"Cannot read image: {image}")

    pipeline = ChartPipeline(PipelineConfig(ocr_engine=ocr))
    outcome = asyncio.run(pipeline.inspect_frame(frame))

    info = {
        "stage": outcome.stage,
        "reason": outcome.reason,
        "gate": asdict(outcome.gate) if outcome.gate else None,
        "plan": asdict(outcome.plan) if outcome.plan else None,
        "detection": None,
        "candle": outcome.candle.to_dict() if outcome.candle else None,
    }
    if outcome.detection is not None:
        info["detection"] = {
            "is_candle_chart": outcome.detection.is_candle_chart,
            "confidence": outcome.detection.confidence,
            "reason": outcome.detection.reason,
            "reasons": outcome.detection.reasons,
        }
    print(json.dumps(info, indent=2, ensure_ascii=False, default=_jsonable))


if __name__ == "__main__":
    app()
