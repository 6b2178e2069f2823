from __future__ import annotations

from cloudstream.models.asset import AssetMetadata, AssetRecord
from cloudstream.services import publisher as pub


def _record(**meta):
    return AssetRecord(
        id="a1", source_name="clip.mp4", original_size_bytes=1000, metadata=AssetMetadata(**meta)
    )


def test_target_geometry():
    assert pub.target_geometry(False) == (1920, 1080)
    assert pub.target_geometry(True) == (1080, 1920)


def test_landscape_plan_without_crop():
    plan = pub.build_transcode_plan(_record())

    assert plan.aspect_ratio == "16:9"
    assert (plan.width, plan.height) == (1920, 1080)
    assert "crop=" not in plan.video_filter
    assert plan.video_filter.startswith("scale=1920:1080:force_original_aspect_ratio=decrease")
    assert plan.object_prefix == "videos/هجمات_مرعبة/a1/"


def test_shorts_plan_with_crop():
    plan = pub.build_transcode_plan(_record(is_shorts=True, crop_bottom_px=40, category="shock"))

    assert plan.aspect_ratio == "9:16"
    assert plan.video_filter.startswith("crop=iw:ih-40:0:0,scale=1080:1920")
    assert plan.video_filter.endswith("setsar=1")
    assert plan.object_prefix == "videos/صدمة/a1/"


def test_plan_command_packages_hls():
    plan = pub.build_transcode_plan(_record(crop_bottom_px=10), work_dir="/work")
    cmd = plan.command

    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-vf") + 1] == plan.video_filter
    assert cmd[cmd.index("-i") + 1] == "/work/sources/a1/clip.mp4"
    assert cmd[-1] == "/work/hls/a1/index.m3u8"
    assert cmd[cmd.index("-f") + 1] == "hls"
    assert plan.to_dict()["command"] == cmd


def test_simulated_publish():
    publisher = pub.SimulatedPublisher(public_domain="https://media.example.com/", compression_ratio=0.2)
    result = publisher.publish(_record(category="horror_comedy"))

    assert result.compressed_size_bytes == 200
    assert result.stream_url == "https://media.example.com/videos/رعب_كوميدي/a1/index.m3u8"
