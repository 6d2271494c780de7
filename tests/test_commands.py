"""Tests for the ffmpeg argument builders (no ffmpeg needed)."""

import math

import pytest


def _value_after(args, flag):
    return args[args.index(flag) + 1]


class TestTrim:
    def test_reencode_is_default(self):
        from clipops.commands import trim

        args = trim("in.mp4", "out.mp4", 5, 12)
        assert _value_after(args, "-ss") == "5"
        assert _value_after(args, "-t") == "7"
        assert "libx264" in args
        assert args[-1] == "out.mp4"

    def test_seek_precedes_input(self):
        from clipops.commands import trim

        args = trim("in.mp4", "out.mp4", 1.5, 3)
        assert args.index("-ss") < args.index("-i")

    def test_copy_mode(self):
        from clipops.commands import trim

        args = trim("in.mp4", "out.mp4", 0, 3, copy=True)
        assert _value_after(args, "-c") == "copy"
        assert "libx264" not in args


class TestRotation:
    def test_180_is_two_transposes(self):
        from clipops.commands import rotation_chain

        assert rotation_chain(180) == "transpose=1,transpose=1"

    def test_90_and_270(self):
        from clipops.commands import rotation_chain

        assert rotation_chain(90) == "transpose=1"
        assert rotation_chain(270) == "transpose=2"

    def test_flips_compose_with_rotation(self):
        from clipops.commands import rotation_chain

        assert rotation_chain(90, "both") == "transpose=1,hflip,vflip"
        assert rotation_chain(None, "vertical") == "vflip"

    def test_rotate_args_use_vf(self):
        from clipops.commands import rotate

        args = rotate("in.mp4", "out.mp4", angle=180)
        assert _value_after(args, "-vf") == "transpose=1,transpose=1"


class TestAtempoChain:
    @pytest.mark.parametrize("speed", [0.1, 0.3, 0.5, 1.0, 1.7, 2.0, 3.0, 8.0, 10.0, 100.0])
    def test_factors_in_range_and_multiply_to_speed(self, speed):
        from clipops.commands import atempo_chain

        factors = atempo_chain(speed)
        assert all(0.5 <= f <= 2.0 for f in factors)
        assert math.prod(factors) == pytest.approx(speed, rel=1e-6)

    def test_in_range_speed_is_single_stage(self):
        from clipops.commands import atempo_chain

        assert atempo_chain(1.5) == [1.5]

    def test_stage_count(self):
        from clipops.commands import atempo_chain

        assert len(atempo_chain(4.0)) == 2
        assert len(atempo_chain(10.0)) == 4
        assert len(atempo_chain(0.25)) == 2

    def test_rejects_non_positive(self):
        from clipops.commands import atempo_chain

        with pytest.raises(ValueError):
            atempo_chain(0)


class TestChangeSpeed:
    def test_with_audio(self):
        from clipops.commands import change_speed

        args = change_speed("in.mp4", "out.mp4", 4.0)
        graph = _value_after(args, "-filter_complex")
        assert "[0:v]setpts=0.25*PTS[v]" in graph
        assert "[0:a]atempo=2,atempo=2[a]" in graph
        assert "[a]" in args

    def test_without_audio_is_video_only(self):
        from clipops.commands import change_speed

        args = change_speed("in.mp4", "out.mp4", 0.5, has_audio=False)
        graph = _value_after(args, "-filter_complex")
        assert graph == "[0:v]setpts=2*PTS[v]"
        assert "atempo" not in " ".join(args)
        assert "[a]" not in args


class TestOverlays:
    @pytest.mark.parametrize("position,expected", [
        ("top-left", "overlay=10:10"),
        ("top-right", "overlay=W-w-10:10"),
        ("bottom-left", "overlay=10:H-h-10"),
        ("bottom-right", "overlay=W-w-10:H-h-10"),
        ("center", "overlay=(W-w)/2:(H-h)/2"),
    ])
    def test_watermark_positions(self, position, expected):
        from clipops.commands import watermark

        args = watermark("in.mp4", "logo.png", "out.mp4", position=position)
        assert expected in _value_after(args, "-filter_complex")

    def test_watermark_scale_and_opacity(self):
        from clipops.commands import watermark

        args = watermark("in.mp4", "logo.png", "out.mp4", opacity=0.3, size=(64, 32))
        graph = _value_after(args, "-filter_complex")
        assert graph.startswith("[1:v]scale=64:32,format=rgba,colorchannelmixer=aa=0.3[wm]")

    def test_pip_defaults(self):
        from clipops.commands import picture_in_picture

        args = picture_in_picture("in.mp4", "cam.mp4", "out.mp4")
        graph = _value_after(args, "-filter_complex")
        assert "[1:v]scale=320:180,format=rgba,colorchannelmixer=aa=1[overlay]" in graph
        assert "[0:v][overlay]overlay=W-w-10:H-h-10" in graph


class TestTransitions:
    def test_direction_maps(self):
        from clipops.commands import xfade_name

        assert xfade_name("wipe", "right") == "wiperight"
        assert xfade_name("slide", "up") == "slideup"
        assert xfade_name("zoom", "in") == "zoomin"
        assert xfade_name("circle") == "circleopen"
        assert xfade_name("wipe") == "wipeleft"

    def test_offset_at_tail_of_first_clip(self):
        from clipops.commands import transition

        args = transition(
            "a.mp4", "b.mp4", "out.mp4", type="fade", duration=1.5,
            first_duration=10, size=(640, 360), fps=25,
        )
        graph = _value_after(args, "-filter_complex")
        assert "xfade=transition=fade:duration=1.5:offset=8.5" in graph
        assert graph.count("scale=640:360") == 2
        assert "acrossfade" not in graph

    def test_audio_crossfade(self):
        from clipops.commands import transition

        args = transition(
            "a.mp4", "b.mp4", "out.mp4", type="wipe", duration=1,
            first_duration=4, size=(320, 240), fps=10, direction="left",
            with_audio=True,
        )
        assert "[0:a][1:a]acrossfade=d=1[a]" in _value_after(args, "-filter_complex")
        assert "[a]" in args

    def test_fade_through_single_clip(self):
        from clipops.commands import fade_through

        args = fade_through("in.mp4", "out.mp4", 1, 5)
        assert _value_after(args, "-vf") == "fade=t=in:st=0:d=1,fade=t=out:st=4:d=1"


class TestConcat:
    def test_manifest_lines(self):
        from clipops.commands import concat_manifest_text

        text = concat_manifest_text(["/tmp/a.mp4", "/tmp/b.mp4"])
        assert text == "file '/tmp/a.mp4'\nfile '/tmp/b.mp4'\n"

    def test_manifest_escapes_quotes(self):
        from clipops.commands import concat_manifest_text

        assert concat_manifest_text(["/tmp/it's.mp4"]) == "file '/tmp/it'\\''s.mp4'\n"

    def test_relative_paths_made_absolute(self, tmp_path, monkeypatch):
        from clipops.commands import concat_manifest_text

        monkeypatch.chdir(tmp_path)
        text = concat_manifest_text(["scratch/part1.mp4"])
        assert text == f"file '{tmp_path / 'scratch' / 'part1.mp4'}'\n"

    def test_concat_args(self):
        from clipops.commands import concat

        args = concat("list.txt", "out.mp4")
        assert args[args.index("-f") + 1] == "concat"
        assert _value_after(args, "-safe") == "0"
        assert _value_after(args, "-c") == "copy"


class TestText:
    def test_static_text_uses_textfile(self):
        from clipops.commands import drawtext_filter

        f = drawtext_filter("/tmp/t.txt", position="top-center")
        assert f.startswith("drawtext=textfile='/tmp/t.txt':expansion=none")
        assert "x='(w-text_w)/2'" in f
        assert "y='10'" in f
        assert "box=1" in f and "boxcolor=black@0.5" in f
        assert "enable=" not in f

    def test_time_window(self):
        from clipops.commands import drawtext_filter

        f = drawtext_filter("/tmp/t.txt", start_time=2, end_time=5)
        assert "enable='between(t,2,5)'" in f

    def test_fade_alpha(self):
        from clipops.commands import drawtext_filter

        f = drawtext_filter("/tmp/t.txt", start_time=2, end_time=6, animation="fade")
        assert "alpha='if(lt(t,2),0,if(lt(t,2+1),(t-2)/1,if(lt(t,6-1),1,if(lt(t,6),(6-t)/1,0))))'" in f

    def test_slide_in_moves_x(self):
        from clipops.commands import drawtext_filter

        f = drawtext_filter("/tmp/t.txt", start_time=0, end_time=4,
                            animation="slide_in", position="top-left")
        assert "x='if(lt(t,0),-text_w," in f
        assert "alpha=" not in f

    def test_font_file(self):
        from clipops.commands import drawtext_filter

        f = drawtext_filter("/tmp/t.txt", font_path="C:\\fonts\\a.ttf")
        assert "fontfile='C\\:/fonts/a.ttf'" in f

    def test_short_fade_still_fades_out(self):
        from clipops.commands import drawtext_filter

        f = drawtext_filter("/tmp/t.txt", start_time=2, end_time=3, animation="fade")
        assert (
            "alpha='if(lt(t,2),0,if(lt(t,2+0.5),(t-2)/0.5,"
            "if(lt(t,3-0.5),1,if(lt(t,3),(3-t)/0.5,0))))'"
        ) in f

    def test_short_slide_still_leaves(self):
        from clipops.commands import drawtext_filter

        f = drawtext_filter("/tmp/t.txt", start_time=0, end_time=1,
                            animation="slide", position="top-left")
        assert "if(lt(t,0+0.5)," in f
        assert "if(lt(t,1-0.5),10,if(lt(t,1)," in f

    def test_single_ramp_uses_whole_window(self):
        from clipops.commands import drawtext_filter

        f = drawtext_filter("/tmp/t.txt", start_time=0, end_time=0.8, animation="fade_in")
        assert "alpha='if(lt(t,0),0,if(lt(t,0+0.8),(t-0)/0.8,1))'" in f

    def test_font_name_escaped(self):
        from clipops.commands import drawtext_filter

        f = drawtext_filter("/tmp/t.txt", font_name="Bob's Sans:Bold")
        assert r"font='Bob'\\\''s Sans\:Bold'" in f


class TestEffects:
    def test_effect_table(self):
        from clipops.commands import effect_filter
        from clipops.operations import EffectFilter

        assert effect_filter(EffectFilter("blur")) == "boxblur=5"
        assert effect_filter(EffectFilter("brightness", value=20)) == "eq=brightness=0.20"
        assert effect_filter(EffectFilter("contrast", intensity=50)) == "eq=contrast=1.50"
        assert effect_filter(EffectFilter("grayscale")) == "hue=s=0"
        assert effect_filter(EffectFilter("invert")) == "negate"
        assert effect_filter(EffectFilter("sharpen")) == "unsharp=5:5:1:5:5:0.0"
        assert effect_filter(EffectFilter("noise")) == "noise=alls=20:allf=t+u"

    def test_effects_chain_in_order(self):
        from clipops.commands import apply_effects
        from clipops.operations import EffectFilter

        args = apply_effects("in.mp4", "out.mp4", [EffectFilter("grayscale"), EffectFilter("invert")])
        assert _value_after(args, "-vf") == "hue=s=0,negate"

    def test_color_correct_chain(self):
        from clipops.commands import color_correct_chain

        chain = color_correct_chain(brightness=10, saturation=-50, hue=30, temperature=20)
        assert chain == (
            "eq=brightness=0.10:saturation=0.50,hue=h=30,"
            "colorbalance=rs=0.20:gs=-0.10:bs=-0.20"
        )


class TestCompress:
    def test_presets(self):
        from clipops.commands import compress

        args = compress("in.mp4", "out.mp4", "high")
        assert _value_after(args, "-crf") == "23"
        assert _value_after(args, "-preset") == "slow"

    def test_max_bitrate(self):
        from clipops.commands import compress

        args = compress("in.mp4", "out.mp4", max_bitrate=1000)
        assert _value_after(args, "-maxrate") == "1000k"
        assert _value_after(args, "-bufsize") == "2000k"

    def test_target_size_bitrate(self):
        from clipops.commands import target_size_bitrate

        # 10 MB over 80 s = 1024 kbps total, minus 128 kbps audio.
        assert target_size_bitrate(10, 80) == 896
        assert target_size_bitrate(0.01, 600) == 100


class TestStack:
    def test_grid_layout(self):
        from clipops.commands import stack

        args = stack([f"{i}.mp4" for i in range(4)], "out.mp4", "grid", (320, 240))
        graph = _value_after(args, "-filter_complex")
        assert "xstack=inputs=4:layout=0_0|320_0|0_240|320_240[v]" in graph

    def test_side_by_side(self):
        from clipops.commands import stack

        args = stack(["a.mp4", "b.mp4"], "out.mp4", "side-by-side", (320, 240))
        assert "[s0][s1]hstack=inputs=2[v]" in _value_after(args, "-filter_complex")

    def test_top_bottom(self):
        from clipops.commands import stack

        args = stack(["a.mp4", "b.mp4"], "out.mp4", "top-bottom", (320, 240))
        assert "vstack=inputs=2" in _value_after(args, "-filter_complex")


class TestAudio:
    def test_full_mute(self):
        from clipops.commands import mute

        args = mute("in.mp4", "out.mp4")
        assert "-an" in args

    def test_ranged_mute(self):
        from clipops.commands import mute
        from clipops.operations import TimeRange

        args = mute("in.mp4", "out.mp4", [TimeRange(1, 2), TimeRange(4, 5.5)])
        assert _value_after(args, "-af") == (
            "volume=enable='between(t,1,2)':volume=0,"
            "volume=enable='between(t,4,5.5)':volume=0"
        )

    def test_volume_percent(self):
        from clipops.commands import adjust_volume

        assert _value_after(adjust_volume("in.mp4", "out.mp4", 150), "-af") == "volume=1.5"

    def test_loudnorm(self):
        from clipops.commands import normalize_audio

        args = normalize_audio("in.mp4", "out.mp4", "lufs", -16)
        assert _value_after(args, "-af") == "loudnorm=I=-16:TP=-1.5:LRA=11"
        assert _value_after(args, "-c:v") == "copy"

    def test_peak_uses_volume_db(self):
        from clipops.commands import normalize_audio

        assert _value_after(normalize_audio("in.mp4", "out.mp4", "peak", -1), "-af") == "volume=-1dB"

    def test_extract_audio_codecs(self):
        from clipops.commands import extract_audio

        assert _value_after(extract_audio("in.mp4", "o.mp3"), "-acodec") == "libmp3lame"
        wav = extract_audio("in.mp4", "o.wav", "wav")
        assert _value_after(wav, "-acodec") == "pcm_s16le"
        assert "-ab" not in wav


class TestStages:
    def test_encode_stage_synthesizes_silence(self):
        from clipops.commands import StreamProfile, encode_stage, still_input

        profile = StreamProfile(320, 240, 10, has_audio=True)
        args = encode_stage(still_input("f.png", 10), "out.mp4", profile,
                            duration=2, input_has_audio=False)
        assert "anullsrc=r=48000:cl=stereo" in args
        assert "1:a:0" in args
        assert "-shortest" in args
        assert _value_after(args, "-t") == "2"

    def test_encode_stage_without_audio(self):
        from clipops.commands import StreamProfile, encode_stage, segment_input

        profile = StreamProfile(320, 240, 10, has_audio=False)
        args = encode_stage(segment_input("in.mp4", 3), "out.mp4", profile)
        assert "-an" in args
        assert "anullsrc" not in " ".join(args)
        assert _value_after(args, "-ss") == "3"

    def test_profile_rounds_to_even(self):
        from clipops.commands import StreamProfile

        from conftest import fake_info

        profile = StreamProfile.from_info(fake_info(width=321, height=241))
        assert (profile.width, profile.height) == (320, 240)

    def test_frames_to_video(self):
        from clipops.commands import frames_to_video

        args = frames_to_video("/tmp/f/frame-%06d.png", "out.mp4", 24, (640, 480), quality="high")
        assert _value_after(args, "-framerate") == "24"
        assert _value_after(args, "-crf") == "18"
        assert _value_after(args, "-vf") == (
            "scale=640:480:force_original_aspect_ratio=decrease,"
            "pad=640:480:(ow-iw)/2:(oh-ih)/2"
        )

    def test_lut_intensity_blend(self):
        from clipops.commands import apply_lut

        full = apply_lut("in.mp4", "out.mp4", "/luts/warm.cube")
        assert _value_after(full, "-vf") == "lut3d=file='/luts/warm.cube',format=yuv420p"
        partial = apply_lut("in.mp4", "out.mp4", "/luts/warm.cube", 0.4)
        assert "all_opacity=0.4" in _value_after(partial, "-filter_complex")

    def test_lut_path_with_apostrophe(self):
        from clipops.commands import apply_lut

        args = apply_lut("in.mp4", "out.mp4", "/luts/it's.cube")
        assert _value_after(args, "-vf") == r"lut3d=file='/luts/it'\\\''s.cube',format=yuv420p"

    def test_frame_sweep(self):
        from clipops.commands import frame_sweep

        args = frame_sweep("in.mp4", "/tmp/f/frame-%03d.jpg", 0.5,
                           start=1, duration=3, count=6)
        assert _value_after(args, "-ss") == "1"
        assert _value_after(args, "-t") == "3"
        assert _value_after(args, "-vf") == "fps=1/0.5"
        assert _value_after(args, "-q:v") == "2"
        assert _value_after(args, "-frames:v") == "6"
        assert args[-1] == "/tmp/f/frame-%03d.jpg"

    def test_frame_sweep_png(self):
        from clipops.commands import frame_sweep

        args = frame_sweep("in.mp4", "frame-%03d.png", 2, format="png")
        assert _value_after(args, "-c:v") == "png"
        assert "-t" not in args and "-frames:v" not in args
