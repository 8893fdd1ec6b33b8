"""
Tests for the command-line interface.
"""

import json
import os
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

import dropmind.main as main_mod
from dropmind.core.speech import WhisperFileSource
from dropmind.main import app

YOUTUBE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
UNCERTAIN_TEXT = "The quick brown fox jumps over the lazy dog. " * 4


class DummyOpenAI:
    """Stand-in for the OpenAI client returning a canned transcription."""

    def __init__(self, response=None, error=None):
        def create(**kwargs):
            if error is not None:
                raise error
            return response

        self.audio = SimpleNamespace(transcriptions=SimpleNamespace(create=create))


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def no_clipboard(monkeypatch: pytest.MonkeyPatch):
    """Capture clipboard writes instead of touching the system clipboard."""
    copied = []
    monkeypatch.setattr(main_mod.pyperclip, "copy", copied.append)
    return copied


@pytest.fixture(autouse=True)
def isolated_environ():
    with patch.dict(os.environ):
        os.environ.pop("DM_DEBUG", None)
        yield


@pytest.fixture
def audio_file(tmp_path: Path) -> Path:
    path = tmp_path / "memo.wav"
    path.write_bytes(b"RIFF0000WAVE")
    return path


def use_whisper_client(monkeypatch: pytest.MonkeyPatch, client: DummyOpenAI) -> None:
    monkeypatch.setattr(main_mod, "WhisperFileSource", lambda path: WhisperFileSource(path, client=client, model="whisper-1"))


class TestIntentsCommand:
    """Test the intents command."""

    def test_table(self, runner):
        result = runner.invoke(app, ["intents"])
        assert result.exit_code == 0
        assert "read-later" in result.output
        assert "study_pack" in result.output

    def test_json(self, runner):
        result = runner.invoke(app, ["intents", "--format", "json"])
        assert result.exit_code == 0
        catalog = json.loads(result.output)
        assert len(catalog) == 8
        assert {"key", "label", "color_hint", "pipeline_id"} <= set(catalog[0])


class TestCleanCommand:
    """Test the clean command."""

    def test_plain_output_copied_to_clipboard(self, runner, no_clipboard):
        result = runner.invoke(app, ["clean", "--text", "um um so like the plan is first we ship then we measure", "--format", "plain"])

        assert result.exit_code == 0
        assert result.output.strip() == "so the plan is\nfirst we ship\nthen we measure."
        assert no_clipboard == ["so the plan is\nfirst we ship\nthen we measure."]

    def test_stages_table(self, runner):
        result = runner.invoke(app, ["clean", "--text", "um hello", "--stages"])
        assert result.exit_code == 0
        assert "remove_fillers" in result.output
        assert "final_cleanup" in result.output

    def test_from_file(self, runner, tmp_path):
        transcript = tmp_path / "raw.txt"
        transcript.write_text("嗯嗯嗯，我们走吧", encoding="utf-8")
        result = runner.invoke(app, ["clean", "--file", str(transcript), "--format", "plain"])
        assert result.exit_code == 0
        assert "我们走吧。" in result.output

    def test_requires_input(self, runner):
        result = runner.invoke(app, ["clean"])
        assert result.exit_code == 1
        assert "Must specify either --text or --file" in result.output

    def test_rejects_both_inputs(self, runner, tmp_path):
        result = runner.invoke(app, ["clean", "--text", "hi", "--file", str(tmp_path / "x.txt")])
        assert result.exit_code == 1
        assert "Cannot specify both" in result.output


class TestClassifyCommand:
    """Test the classify command."""

    def test_certain_link(self, runner):
        result = runner.invoke(app, ["classify", "--text", YOUTUBE_URL, "--format", "json"])
        assert result.exit_code == 0
        assert '"pipeline_id": "study_pack"' in result.output
        assert '"confirmed": false' in result.output

    def test_rich_output(self, runner):
        result = runner.invoke(app, ["classify", "--text", "https://x.com/user/status/1"])
        assert result.exit_code == 0
        assert "Bookmark" in result.output
        assert "bookmark" in result.output

    def test_uncertain_without_confirmation(self, runner):
        result = runner.invoke(app, ["classify", "--text", UNCERTAIN_TEXT, "--format", "json", "--no-confirm"])
        assert result.exit_code == 0
        assert '"pipeline_id": "deep_summary"' in result.output

    def test_uncertain_confirmed_by_number(self, runner):
        """Test answering the prompt with an option number confirms that option."""
        result = runner.invoke(app, ["classify", "--text", UNCERTAIN_TEXT, "--format", "json"], input="2\n")
        assert result.exit_code == 0
        assert "I think this is" in result.output
        assert '"pipeline_id": "article_format"' in result.output
        assert '"confirmed": true' in result.output

    def test_uncertain_confirmed_by_name(self, runner):
        result = runner.invoke(app, ["classify", "--text", UNCERTAIN_TEXT, "--format", "json"], input="nonsense\nbookmark\n")
        assert result.exit_code == 0
        assert "does not match any option" in result.output
        assert '"pipeline_id": "bookmark"' in result.output

    def test_dismissed(self, runner):
        result = runner.invoke(app, ["classify", "--text", UNCERTAIN_TEXT, "--format", "json"], input="q\n")
        assert result.exit_code == 0
        assert '"pipeline_id": null' in result.output

    def test_blank_input(self, runner):
        result = runner.invoke(app, ["classify", "--text", "   "])
        assert result.exit_code == 0
        assert "Nothing to classify" in result.output

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(app, ["classify", "--file", str(tmp_path / "missing.txt")])
        assert result.exit_code == 1
        assert "File not found" in result.output


class TestDictateCommand:
    """Test the dictate command with a dummy Whisper client."""

    def test_transcribes_cleans_and_routes(self, runner, audio_file, monkeypatch, no_clipboard):
        response = {"language": "english", "segments": [{"text": " remind me to", "avg_logprob": -0.1}, {"text": " call the bank tomorrow", "avg_logprob": -0.2}]}
        use_whisper_client(monkeypatch, DummyOpenAI(response))

        result = runner.invoke(app, ["dictate", str(audio_file), "--silence-ms", "50", "--no-confirm", "--format", "json"])

        assert result.exit_code == 0, result.output
        assert "remind me to call the bank tomorrow." in result.output
        assert '"pipeline_id": "todo"' in result.output
        assert no_clipboard == ["remind me to call the bank tomorrow."]

    def test_no_speech(self, runner, audio_file, monkeypatch):
        use_whisper_client(monkeypatch, DummyOpenAI({"text": "", "segments": []}))
        result = runner.invoke(app, ["dictate", str(audio_file), "--silence-ms", "50", "--no-confirm"])
        assert result.exit_code == 0
        assert "No speech captured" in result.output

    def test_transcription_failure(self, runner, audio_file, monkeypatch):
        use_whisper_client(monkeypatch, DummyOpenAI(error=RuntimeError("quota exceeded")))
        result = runner.invoke(app, ["dictate", str(audio_file), "--silence-ms", "50", "--no-confirm"])
        assert result.exit_code == 0
        assert "transcription-failed" in result.output
        assert "No speech captured" in result.output

    def test_missing_audio(self, runner, tmp_path):
        result = runner.invoke(app, ["dictate", str(tmp_path / "missing.wav")])
        assert result.exit_code == 1
        assert "Audio file not found" in result.output

    def test_unsupported_audio(self, runner, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("not audio", encoding="utf-8")
        result = runner.invoke(app, ["dictate", str(path)])
        assert result.exit_code == 1
        assert "Unsupported audio format" in result.output

    def test_missing_api_key(self, runner, audio_file, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        for var in ("OPENAI_API_KEY", "DM_ENV_FILE", "DROPMIND_ENV_FILE", "DM_PROJECT_ROOT", "DROPMIND_PROJECT_ROOT"):
            os.environ.pop(var, None)

        result = runner.invoke(app, ["dictate", str(audio_file)])
        assert result.exit_code == 1
        assert "OPENAI_API_KEY" in result.output
