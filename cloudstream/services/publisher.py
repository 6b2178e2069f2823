from __future__ import annotations

import os
from dataclasses import dataclass, field

from ..models.asset import AssetRecord
from .catalog import MANIFEST_NAME, stream_object_prefix, stream_url

LANDSCAPE_GEOMETRY = (1920, 1080)
SHORTS_GEOMETRY = (1080, 1920)

HLS_SEGMENT_SECONDS = int(os.environ.get("CLOUDSTREAM_HLS_SEGMENT_SECONDS", "6"))
HLS_VIDEO_BITRATE = os.environ.get("CLOUDSTREAM_HLS_VIDEO_BITRATE", "800k")
HLS_AUDIO_BITRATE = os.environ.get("CLOUDSTREAM_HLS_AUDIO_BITRATE", "96k")
HLS_H264_PRESET = os.environ.get("CLOUDSTREAM_HLS_H264_PRESET", "veryfast")


@dataclass(frozen=True)
class TranscodePlan:
    asset_id: str
    width: int
    height: int
    aspect_ratio: str
    crop_bottom_px: int
    video_filter: str
    object_prefix: str
    command: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "asset_id": self.asset_id,
            "width": self.width,
            "height": self.height,
            "aspect_ratio": self.aspect_ratio,
            "crop_bottom_px": self.crop_bottom_px,
            "video_filter": self.video_filter,
            "object_prefix": self.object_prefix,
            "command": list(self.command),
        }


@dataclass(frozen=True)
class PublishResult:
    compressed_size_bytes: int
    stream_url: str


def target_geometry(is_shorts: bool) -> tuple[int, int]:
    return SHORTS_GEOMETRY if is_shorts else LANDSCAPE_GEOMETRY


def _video_filter(*, width: int, height: int, crop_bottom_px: int) -> str:
    filters = []
    if crop_bottom_px > 0:
        # Trim burned-in watermarks/captions along the bottom edge.
        filters.append(f"crop=iw:ih-{crop_bottom_px}:0:0")
    filters.append(f"scale={width}:{height}:force_original_aspect_ratio=decrease")
    filters.append(f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2")
    filters.append("setsar=1")
    return ",".join(filters)


def _ffmpeg_hls_cmd(*, src_path: str, out_dir: str, video_filter: str) -> list[str]:
    return [
        "ffmpeg",
        "-hide_banner",
        "-nostdin",
        "-loglevel",
        "error",
        "-y",
        "-i",
        src_path,
        "-map",
        "0:v:0",
        "-map",
        "0:a?",
        "-sn",
        "-vf",
        video_filter,
        "-c:v",
        "libx264",
        "-preset",
        HLS_H264_PRESET,
        "-b:v",
        HLS_VIDEO_BITRATE,
        "-c:a",
        "aac",
        "-b:a",
        HLS_AUDIO_BITRATE,
        "-ac",
        "2",
        "-f",
        "hls",
        "-hls_time",
        str(HLS_SEGMENT_SECONDS),
        "-hls_playlist_type",
        "vod",
        "-hls_list_size",
        "0",
        "-hls_segment_filename",
        os.path.join(out_dir, "seg_%04d.ts"),
        os.path.join(out_dir, MANIFEST_NAME),
    ]


def build_transcode_plan(record: AssetRecord, *, work_dir: str = "/tmp/cloudstream") -> TranscodePlan:
    """Crop/aspect normalization and HLS packaging for one asset. Nothing runs it."""
    metadata = record.metadata
    width, height = target_geometry(metadata.is_shorts)
    video_filter = _video_filter(width=width, height=height, crop_bottom_px=metadata.crop_bottom_px)
    prefix = stream_object_prefix(metadata.category, record.id)
    command = _ffmpeg_hls_cmd(
        src_path=os.path.join(work_dir, "sources", record.id, record.source_name),
        out_dir=os.path.join(work_dir, "hls", record.id),
        video_filter=video_filter,
    )
    return TranscodePlan(
        asset_id=record.id,
        width=width,
        height=height,
        aspect_ratio=metadata.aspect_ratio,
        crop_bottom_px=metadata.crop_bottom_px,
        video_filter=video_filter,
        object_prefix=f"{prefix}/",
        command=command,
    )


class SimulatedPublisher:
    """
    Stands in for the encoder and object store: derives the compressed size
    from a fixed ratio and the public manifest URL from the category folder.
    """

    def __init__(self, *, public_domain: str, compression_ratio: float) -> None:
        self.public_domain = public_domain.rstrip("/")
        self.compression_ratio = compression_ratio

    def compressed_size(self, original_size_bytes: int) -> int:
        return int(round(max(0, original_size_bytes) * self.compression_ratio))

    def publish(self, record: AssetRecord) -> PublishResult:
        return PublishResult(
            compressed_size_bytes=self.compressed_size(record.original_size_bytes),
            stream_url=stream_url(self.public_domain, record.metadata.category, record.id),
        )
