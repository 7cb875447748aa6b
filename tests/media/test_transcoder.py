"""
Tests for the ffmpeg transcoder: filter rendering, command building,
encoding profiles and failure handling.
"""

import io

import pytest
from PIL import Image

from chatmedia.exceptions import TranscodeFailed
from chatmedia.media.transcoder import (
    AUDIO_EFFECTS,
    FilterStep,
    TranscodeJob,
    Transcoder,
    animated_sticker_profile,
    audio_effect_profile,
    chat_mp4_profile,
    clamp_animated_duration,
    png_profile,
    render_filter_graph,
    resolve_audio_effect,
    square_canvas_filters,
    static_sticker_profile,
    voice_note_profile,
)


def option_value(cmd, flag):
    return cmd[cmd.index(flag) + 1]


@pytest.mark.unit
class TestFilterRendering:
    """Tests for FilterStep and render_filter_graph."""

    def test_render_positional_and_keyword_args(self):
        """Test positional args come first, then key=value pairs."""
        step = FilterStep("scale", (512, 512), {"flags": "lanczos"})

        assert step.render() == "scale=512:512:flags=lanczos"

    def test_render_without_args(self):
        """Test a bare filter renders as its name."""
        assert FilterStep("areverse").render() == "areverse"

    def test_raw_expression(self):
        """Test raw expressions pass through untouched."""
        assert FilterStep.raw("atempo=1.25,aresample=44100").render() == "atempo=1.25,aresample=44100"

    def test_graph_joins_with_commas(self):
        """Test steps and plain strings are joined with commas."""
        graph = render_filter_graph([FilterStep("fps", (15,)), "format=rgba"])

        assert graph == "fps=15,format=rgba"

    def test_square_canvas_never_crops(self):
        """Test the canvas scales down with aspect ratio kept and pads transparently."""
        graph = render_filter_graph(square_canvas_filters(512))

        assert "scale=512:512:force_original_aspect_ratio=decrease" in graph
        assert "pad=512:512:(ow-iw)/2:(oh-ih)/2:color=0x00000000" in graph
        assert "crop" not in graph

    def test_square_canvas_with_fps(self):
        """Test the frame rate filter is prepended."""
        steps = square_canvas_filters(256, fps=15)

        assert steps[0].render() == "fps=15"
        assert len(steps) == 4


@pytest.mark.unit
class TestClampAnimatedDuration:
    """Tests for animated sticker duration clamping."""

    @pytest.mark.parametrize(
        "requested, cap, expected",
        [
            (5, 30, 5.0),
            (25, 30, 10.0),
            (None, 30, 10.0),
            (0, 30, 10.0),
            (8, 6, 6.0),
            (None, 4, 4.0),
        ],
    )
    def test_clamp(self, requested, cap, expected):
        """Test min(requested, cap, 10s) with a missing request meaning the cap."""
        assert clamp_animated_duration(requested, cap) == expected


@pytest.mark.unit
class TestProfiles:
    """Tests for encoding profiles."""

    def test_static_sticker_profile(self):
        """Test static stickers are single-frame WEBP."""
        profile = static_sticker_profile()

        assert profile.extension == "webp"
        assert profile.output_options["vcodec"] == "libwebp"
        assert profile.output_options["frames:v"] == 1

    def test_animated_sticker_reduced_pass(self):
        """Test the reduced pass lowers quality and raises compression."""
        normal = animated_sticker_profile(5.0)
        reduced = animated_sticker_profile(5.0, reduced=True)

        assert normal.name == "animated_sticker"
        assert reduced.name == "animated_sticker_reduced"
        assert reduced.output_options["q:v"] < normal.output_options["q:v"]
        assert reduced.output_options["compression_level"] > normal.output_options["compression_level"]
        assert normal.output_options["t"] == 5.0
        assert "an" in normal.output_options

    def test_voice_note_profile(self):
        """Test voice notes are mono 48 kHz Opus in OGG."""
        options = voice_note_profile().output_options

        assert options["acodec"] == "libopus"
        assert options["ar"] == 48000
        assert options["ac"] == 1
        assert options["f"] == "ogg"

    def test_chat_mp4_profile(self):
        """Test chat video uses baseline H.264 with faststart."""
        options = chat_mp4_profile().output_options

        assert options["vcodec"] == "libx264"
        assert options["profile:v"] == "baseline"
        assert options["pix_fmt"] == "yuv420p"
        assert options["movflags"] == "+faststart"

    def test_job_carries_profile_name(self, tmp_path):
        """Test jobs built from a profile keep its name and options."""
        job = png_profile().job(tmp_path / "in.webp", tmp_path / "out.png", timeout=5)

        assert job.profile_name == "png"
        assert job.timeout == 5
        assert job.output_options == {"vcodec": "png", "frames:v": 1}


@pytest.mark.unit
class TestAudioEffects:
    """Tests for the audio effect table."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("nightcore", "nightcore"),
            ("  Bass ", "bass"),
            ("bassboost", "bass"),
            ("slowed", "slow"),
            ("chipmunk", "squirrel"),
            ("8D", "8d"),
            ("karaoke", None),
            ("", None),
        ],
    )
    def test_resolve(self, name, expected):
        """Test names and aliases resolve case-insensitively."""
        assert resolve_audio_effect(name) == expected

    def test_effect_profile_uses_filter_table(self):
        """Test the effect profile applies the table's filter graph."""
        profile = audio_effect_profile("reverse")

        assert profile.name == "effect_reverse"
        assert render_filter_graph(profile.audio_filters) == AUDIO_EFFECTS["reverse"]

    def test_bass_boost_is_limited_equalizer(self):
        """Test bass boost lifts 60 Hz and 120 Hz and ends with a limiter."""
        stages = AUDIO_EFFECTS["bass"].split(",")

        assert stages[0].startswith("equalizer=f=60:")
        assert stages[0].endswith(":g=15")
        assert stages[1].startswith("equalizer=f=120:")
        assert stages[1].endswith(":g=5")
        assert stages[-1] == "alimiter=limit=0.9"


@pytest.mark.unit
class TestTranscoderCommand:
    """Tests for Transcoder.build_command()."""

    def test_command_contains_filters_and_options(self, tmp_path):
        """Test the argv carries input, filter graph, codec and output."""
        transcoder = Transcoder(ffmpeg_binary="/opt/ffmpeg")
        job = static_sticker_profile(512).job(tmp_path / "in.png", tmp_path / "out.webp")

        cmd = transcoder.build_command(job)

        assert cmd[0] == "/opt/ffmpeg"
        assert option_value(cmd, "-i") == str(tmp_path / "in.png")
        assert option_value(cmd, "-vf") == render_filter_graph(square_canvas_filters(512))
        assert option_value(cmd, "-vcodec") == "libwebp"
        assert str(tmp_path / "out.webp") in cmd
        assert "-y" in cmd
        assert "-hide_banner" in cmd

    def test_command_audio_options(self, tmp_path):
        """Test audio filters and bitrate are mapped to ffmpeg flags."""
        job = audio_effect_profile("echo").job(tmp_path / "in.mp3", tmp_path / "out.mp3")

        cmd = Transcoder().build_command(job)

        assert option_value(cmd, "-af") == AUDIO_EFFECTS["echo"]
        assert option_value(cmd, "-b:a") == "192k"
        assert "-vn" in cmd
        assert "-vf" not in cmd


@pytest.mark.unit
class TestTranscoderRun:
    """Tests for Transcoder.run() failure paths."""

    async def test_empty_input_fails(self, tmp_path):
        """Test an empty input file is rejected before ffmpeg starts."""
        source = tmp_path / "in.png"
        source.write_bytes(b"")

        result = await Transcoder().run(png_profile().job(source, tmp_path / "out.png"))

        assert not result.ok
        assert isinstance(result.error, TranscodeFailed)
        assert result.error.user_message == "Input media is empty"

    async def test_missing_input_fails(self, tmp_path):
        """Test a missing input file yields TranscodeFailed."""
        result = await Transcoder().run(
            TranscodeJob(input_path=tmp_path / "nope.png", output_path=tmp_path / "out.png")
        )

        assert isinstance(result.error, TranscodeFailed)

    async def test_missing_binary(self, tmp_path):
        """Test a missing ffmpeg binary yields a clean error."""
        source = tmp_path / "in.png"
        source.write_bytes(b"\x89PNG" + b"\x00" * 200)
        transcoder = Transcoder(ffmpeg_binary=str(tmp_path / "no-such-ffmpeg"))

        result = await transcoder.run(png_profile().job(source, tmp_path / "out.png"))

        assert result.error.user_message == "Media encoder is not available"
        assert transcoder.get_statistics()["jobs_failed"] == 1

    async def test_health_check_missing_binary(self, tmp_path):
        """Test health check reports False for a missing binary."""
        assert await Transcoder(ffmpeg_binary=str(tmp_path / "no-such-ffmpeg")).health_check() is False


@pytest.mark.integration
class TestTranscoderWithFfmpeg:
    """Tests that run the real ffmpeg binary."""

    @pytest.mark.parametrize("size", [(200, 100), (100, 300), (512, 512)], ids=["wide", "tall", "square"])
    async def test_static_sticker_is_square(self, tmp_path, image_factory, size):
        """Test wide, tall and square images all become a 512x512 WEBP."""
        source = tmp_path / "in.png"
        source.write_bytes(image_factory(size))
        output = tmp_path / "out.webp"

        result = await Transcoder().run(static_sticker_profile(512).job(source, output))

        assert result.ok
        with Image.open(io.BytesIO(output.read_bytes())) as img:
            assert img.format == "WEBP"
            assert img.size == (512, 512)
            if size[0] != size[1]:
                # Поля вокруг вытянутого изображения прозрачные
                assert img.convert("RGBA").getpixel((0, 0))[3] == 0

    @pytest.mark.parametrize("size", [(160, 90), (90, 160)], ids=["wide", "tall"])
    async def test_animated_sticker_is_square(self, tmp_path, size):
        """Test an animated GIF becomes a looping 512x512 animated WEBP."""
        frames = [Image.new("RGB", size, (i * 60, 100, 200 - i * 60)) for i in range(4)]
        source = tmp_path / "in.gif"
        frames[0].save(source, format="GIF", save_all=True, append_images=frames[1:], duration=200, loop=0)
        output = tmp_path / "out.webp"

        result = await Transcoder().run(animated_sticker_profile(2.0, 512).job(source, output))

        assert result.ok
        with Image.open(io.BytesIO(output.read_bytes())) as img:
            assert img.format == "WEBP"
            assert img.size == (512, 512)
            assert img.n_frames > 1

    async def test_run_paths_with_codec_options(self, tmp_path, webp_bytes):
        """Test the path-based entry point converts WEBP to PNG."""
        source = tmp_path / "in.webp"
        source.write_bytes(webp_bytes)
        output = tmp_path / "out.png"

        result = await Transcoder().run_paths(
            source, output, codec_options={"vcodec": "png", "frames:v": 1}
        )

        assert result.ok
        assert output.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"
