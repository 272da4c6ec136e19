"""Tests for the file-level API and the command-line interface."""

import json
import logging

import cv2
import pytest

from micrline import cli
from micrline.api import MICRReader, load_image
from micrline.errors import ImageError
from micrline.models import PixelFormat


@pytest.fixture
def sample_image(tmp_path, line_image, on_page):
    gray, _ = line_image("123456789")
    page, _ = on_page(gray)
    path = tmp_path / "check.png"
    cv2.imwrite(str(path), cv2.cvtColor(page, cv2.COLOR_GRAY2BGR))
    return path


@pytest.fixture(autouse=True)
def _keep_pytest_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)


class TestMICRReader:
    def test_read_file(self, sample_image):
        with MICRReader() as reader:
            result = reader.read(sample_image)
        assert result.ok
        assert result.lines[0]["text"] == "123456789"

    def test_read_array(self, line_image):
        gray, _ = line_image("123456789")
        with MICRReader(num_threads=1) as reader:
            assert reader.read_array(gray).lines[0]["text"] == "123456789"

    def test_keyword_options(self):
        with MICRReader({"num_threads": 1}, min_score=0.4) as reader:
            assert reader.engine.config.min_score == pytest.approx(0.4)
            assert reader.engine.config.num_threads == 1

    def test_file_not_found(self, tmp_path):
        with MICRReader() as reader:
            with pytest.raises(FileNotFoundError):
                reader.read(tmp_path / "nonexistent.png")

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        with pytest.raises(ImageError):
            load_image(path)

    def test_load_image_format(self, sample_image):
        assert load_image(sample_image).pixel_format == PixelFormat.BGR24


class TestCLI:
    def test_text_output(self, sample_image, capsys):
        assert cli.main(["--image", str(sample_image)]) == 0
        out = capsys.readouterr().out
        assert "MICR Line 0:     123456789" in out
        assert "Routing Number:  123456789" in out

    def test_json_output(self, sample_image, capsys):
        assert cli.main(["--image", str(sample_image), "--format", "json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["status_code"] == 0
        assert data["payload"]["lines"][0]["text"] == "123456789"

    def test_verbose_glyph_details(self, sample_image, capsys):
        assert cli.main(["--image", str(sample_image), "--verbose"]) == 0
        assert "Glyph Details (9 glyphs)" in capsys.readouterr().out

    def test_config_file(self, sample_image, tmp_path, capsys):
        config = tmp_path / "engine.json"
        config.write_text(json.dumps({"segmenter_accuracy": "medium", "num_threads": 1}))
        assert cli.main(["--image", str(sample_image), "--config", str(config)]) == 0

    def test_missing_image(self, tmp_path, capsys):
        code = cli.main(["--image", str(tmp_path / "missing.png"), "--format", "json"])
        assert code == -1
        data = json.loads(capsys.readouterr().out)
        assert data["status_code"] != 0

    def test_bad_config(self, sample_image, tmp_path):
        config = tmp_path / "engine.json"
        config.write_text('{"score_type": "median"}')
        assert cli.main(["--image", str(sample_image), "--config", str(config)]) == -1

    def test_missing_assets(self, sample_image, tmp_path):
        args = ["--image", str(sample_image), "--assets", str(tmp_path / "nope")]
        assert cli.main(args) == -1

    def test_token_options_accepted(self, sample_image):
        args = ["--image", str(sample_image), "--tokenfile", "token.lic", "--tokendata", "QUJD"]
        assert cli.main(args) == 0

    def test_argument_error_exit_code(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main([])
        assert exc.value.code == -1
        assert "--image" in capsys.readouterr().err

    def test_config_debug_level_sets_console_level(self, sample_image, tmp_path, monkeypatch):
        levels = []
        monkeypatch.setattr(cli, "setup_logging", lambda level, *a, **k: levels.append(level))
        config = tmp_path / "engine.json"
        config.write_text(json.dumps({"debug_level": "info"}))
        assert cli.main(["--image", str(sample_image), "--config", str(config)]) == 0
        assert levels[-1] == logging.INFO

    def test_default_console_level_is_warning(self, sample_image, monkeypatch):
        levels = []
        monkeypatch.setattr(cli, "setup_logging", lambda level, *a, **k: levels.append(level))
        assert cli.main(["--image", str(sample_image)]) == 0
        assert levels[-1] == logging.WARNING

    def test_verbose_overrides_config_level(self, sample_image, tmp_path, monkeypatch):
        levels = []
        monkeypatch.setattr(cli, "setup_logging", lambda level, *a, **k: levels.append(level))
        config = tmp_path / "engine.json"
        config.write_text(json.dumps({"debug_level": "error"}))
        args = ["--image", str(sample_image), "--config", str(config), "--verbose"]
        assert cli.main(args) == 0
        assert levels[-1] == logging.DEBUG
