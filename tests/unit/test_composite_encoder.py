"""
Unit tests for CompositeEncoder (encode, then score the result).
"""

import unittest
from unittest.mock import patch

from ffbatch.core.modules.encoders.composite_encoder import CompositeEncoder
from ffbatch.core.modules.encoders.state import EncoderPhase, EncodingState
from tests.fakes import ControlledProcess, EncoderTestCase, FakeProcess, settle

ENCODE_OUTPUT = "frame=  300 fps= 60 time=00:00:10.00 bitrate= 500kbits/s speed=2x\r"
VMAF_OUTPUT = "[Parsed_libvmaf_4 @ 0x1] VMAF score: 91.25\n"


def tool(encode_code: int = 0, vmaf_output: str = VMAF_OUTPUT, vmaf_code: int = 0):
    def factory(command: str):
        if "libvmaf" in command:
            return FakeProcess(vmaf_output, returncode=vmaf_code)
        return FakeProcess(ENCODE_OUTPUT, returncode=encode_code)
    return factory


class TestCompositeEncoder(EncoderTestCase):

    async def test_encode_then_score(self):
        shell = self.use_shell(tool())
        encoder = await CompositeEncoder.create("ffprobe", "ffmpeg", self.input_file)

        await encoder.start("-c:v libx265 -crf 28", self.output_file)

        self.assertEqual(encoder.state, EncodingState.SUCCESS)
        self.assertEqual(encoder.score, 91.25)
        self.assertEqual(encoder.phase, EncoderPhase.DONE)
        self.assertEqual(encoder.report.encoding_phase, EncoderPhase.DONE)
        self.assertEqual(encoder.encoder.state, EncodingState.SUCCESS)
        self.assertEqual(encoder.scorer.state, EncodingState.SUCCESS)

        encode_command, vmaf_command = shell.commands
        self.assertIn("-crf 28", encode_command)
        # the encoded output is the distorted input of the scorer
        self.assertIn(f"-i {self.input_file} -i {self.output_file}", vmaf_command)
        self.assertIn("Encoding and scoring complete. Score is 91.25.", encoder.log)

    async def test_failed_encode_is_not_scored(self):
        shell = self.use_shell(tool(encode_code=1))
        encoder = await CompositeEncoder.create("ffprobe", "ffmpeg", self.input_file)

        with patch("ffbatch.core.modules.encoders.composite_encoder.QualityScorer.create") as mock_create:
            await encoder.start("", self.output_file)

        self.assertEqual(encoder.state, EncodingState.ERROR)
        self.assertIsNone(encoder.scorer)
        self.assertIsNone(encoder.score)
        self.assertEqual(encoder.phase, EncoderPhase.ENCODING)
        mock_create.assert_not_called()
        self.assertEqual(len(shell.commands), 1)

    async def test_failed_scoring(self):
        self.use_shell(tool(vmaf_output="Error initializing filter 'libvmaf'\n", vmaf_code=1))
        encoder = await CompositeEncoder.create("ffprobe", "ffmpeg", self.input_file)

        await encoder.start("", self.output_file)

        self.assertEqual(encoder.state, EncodingState.ERROR)
        self.assertEqual(encoder.phase, EncoderPhase.SCORING)
        self.assertIsNone(encoder.score)
        self.assertIn("Scoring failed.", encoder.log)

    async def test_nonexistent_input(self):
        encoder = await CompositeEncoder.create("ffprobe", "ffmpeg", self.test_dir / "missing.mkv")
        self.assertEqual(encoder.state, EncodingState.ERROR)

    async def test_start_when_not_pending_is_ignored(self):
        shell = self.use_shell(tool())
        encoder = await CompositeEncoder.create("ffprobe", "ffmpeg", self.input_file)
        await encoder.start("", self.output_file)

        await encoder.start("", self.output_file)

        self.assertEqual(encoder.state, EncodingState.SUCCESS)
        self.assertEqual(len(shell.commands), 2)
        self.assertIn("Current state: Success", encoder.log)

    async def test_child_events_are_forwarded(self):
        processes = []

        def factory(command):
            process = ControlledProcess()
            processes.append(process)
            return process

        self.use_shell(factory)
        encoder = await CompositeEncoder.create("ffprobe", "ffmpeg", self.input_file)
        logs = []
        encoder.on("log", lambda tag, text, internal: logs.append((tag, internal)))
        task = self.loop_task(encoder.start("", self.output_file))
        await settle(5)

        self.assertEqual(encoder.phase, EncoderPhase.ENCODING)
        processes[0].write("frame=1 time=00:00:04.00\r")
        await settle(3)
        self.assertEqual(encoder.current_duration, 4.0)

        processes[0].finish()
        await settle(5)
        self.assertEqual(encoder.phase, EncoderPhase.SCORING)

        processes[1].finish(VMAF_OUTPUT)
        await task

        self.assertIn(("Process Encoder/FFmpeg", True), logs)
        self.assertIn(("VMAF Scoring Encoder/FFmpeg", True), logs)
        self.assertIn(("Process Encoder/Log", False), logs)
        self.assertIn(("Encode And Score Encoder/Log", False), logs)

    async def test_reset_drops_children(self):
        self.use_shell(tool())
        encoder = await CompositeEncoder.create("ffprobe", "ffmpeg", self.input_file)
        await encoder.start("", self.output_file)
        child = encoder.encoder
        scorer = encoder.scorer

        self.assertTrue(encoder.reset())

        self.assertEqual(encoder.state, EncodingState.PENDING)
        self.assertIsNone(encoder.encoder)
        self.assertIsNone(encoder.scorer)
        self.assertIsNone(encoder.score)
        self.assertEqual(child.listener_count("log"), 0)
        self.assertEqual(scorer.listener_count("update"), 0)

        await encoder.start("", self.output_file)
        self.assertEqual(encoder.state, EncodingState.SUCCESS)


if __name__ == '__main__':
    unittest.main()
