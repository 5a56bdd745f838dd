"""Tests for the command line entry point."""

import logging
from unittest.mock import patch

import pytest

from bundle_core.bundle import Bundle, BundleMode, ImageType
from bundle_core.logging.context import clear_log_context
from bundle_pipeline.__main__ import EXIT_FAILURE, EXIT_OK, EXIT_USAGE, main, parse_args


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers and context installed by main()."""
    yield
    clear_log_context()
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root_logger.handlers.clear()


@pytest.fixture
def url_file(tmp_path):
    """A list of seven image URLs."""
    path = tmp_path / "urls.txt"
    path.write_text("".join(f"https://img.test/{i}.jpg\n" for i in range(7)))
    return path


class TestParseArgs:
    """Tests for argument parsing."""

    def test_download_positionals(self, tmp_path):
        """Positional arguments and options are parsed."""
        args = parse_args(["download", "urls.txt", "out.bundle", "4", "--threshold", "50"])
        assert args.command == "download"
        assert str(args.url_list) == "urls.txt"
        assert args.workers == 4
        assert args.threshold == 50
        assert args.metrics_port is None

    def test_command_required(self):
        """Running with no command exits with usage."""
        with pytest.raises(SystemExit):
            parse_args([])


class TestDownloadCommand:
    """Tests for the download command."""

    def test_builds_bundle(self, tmp_path, url_file, stub_fetcher):
        """A full run writes the bundle, the manifest and logs, and leaves no shards."""
        output = tmp_path / "out" / "images.bundle"

        with patch(
            "bundle_pipeline.workers.download_worker.ImageFetcher",
            side_effect=lambda **kwargs: stub_fetcher(),
        ):
            exit_code = main([
                "download", str(url_file), str(output), "2",
                "--threshold", "3",
                "--log-dir", str(tmp_path / "logs"),
            ])

        assert exit_code == EXIT_OK
        with Bundle.open(output, BundleMode.READ) as bundle:
            assert bundle.image_count == 7
        assert (tmp_path / "out" / "images.bundle_output" / "merged_shards.jsonl").exists()
        assert list((tmp_path / "out").glob("*.shard.tmp*")) == []
        assert list((tmp_path / "logs").rglob("*.log"))

    def test_invalid_worker_count(self, tmp_path, url_file):
        """A worker count of zero is a usage error."""
        exit_code = main([
            "download", str(url_file), str(tmp_path / "out.bundle"), "0",
            "--log-dir", str(tmp_path / "logs"),
        ])
        assert exit_code == EXIT_USAGE

    def test_missing_url_list(self, tmp_path):
        """A missing URL list is a usage error."""
        exit_code = main([
            "download", str(tmp_path / "missing.txt"), str(tmp_path / "out.bundle"), "2",
            "--log-dir", str(tmp_path / "logs"),
        ])
        assert exit_code == EXIT_USAGE

    def test_unwritable_output_fails(self, tmp_path, url_file, stub_fetcher):
        """An output path that can't be created fails the run."""
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")

        with patch(
            "bundle_pipeline.workers.download_worker.ImageFetcher",
            side_effect=lambda **kwargs: stub_fetcher(),
        ):
            exit_code = main([
                "download", str(url_file), str(blocker / "out.bundle"), "1",
                "--log-dir", str(tmp_path / "logs"),
            ])

        assert exit_code == EXIT_FAILURE


class TestInspectCommand:
    """Tests for the inspect command."""

    def test_prints_summary(self, tmp_path, jpeg_bytes, png_bytes, capsys):
        """Image count, byte total and per-type counts are printed."""
        path = tmp_path / "images.bundle"
        with Bundle.open(path) as bundle:
            bundle.append_image(jpeg_bytes, ImageType.JPEG)
            bundle.append_image(jpeg_bytes, ImageType.JPEG)
            bundle.append_image(png_bytes, ImageType.PNG)

        assert main(["inspect", str(path)]) == EXIT_OK

        out = capsys.readouterr().out
        assert "images:  3" in out
        assert f"bytes:   {2 * len(jpeg_bytes) + len(png_bytes)}" in out
        assert "JPEG: 2" in out
        assert "PNG: 1" in out

    def test_missing_bundle(self, tmp_path, capsys):
        """A missing bundle is reported on stderr."""
        assert main(["inspect", str(tmp_path / "nope.bundle")]) == EXIT_FAILURE
        assert "Cannot read bundle" in capsys.readouterr().err
