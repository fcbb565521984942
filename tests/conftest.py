"""Shared test fixtures for DocCraft.

The engine is a small Python script standing in for pandoc, run through the
real subprocess invoker. It appends each conversion's argument list to
``calls.log`` and reacts to markers in the input documents:

- ``FAIL``: write to stderr and exit 43
- ``NOOUTPUT``: exit 0 without writing the output file
- ``SLOW``: sleep briefly before writing
"""

import sys
from pathlib import Path

import pytest

from doccraft.config import ServiceConfig
from doccraft.generation import build_service


FAKE_PANDOC = '''
import pathlib
import sys
import time

LOG = pathlib.Path({log!r})
args = sys.argv[1:]
if args == ["--version"]:
    print("pandoc 3.1.9 (fake)")
    sys.exit(0)
with LOG.open("a", encoding="utf-8") as f:
    f.write("\\t".join(args) + "\\n")
out = pathlib.Path(args[args.index("-o") + 1])
inputs = [pathlib.Path(p).read_text(encoding="utf-8") for p in args[args.index("-o") + 2:]]
text = "".join(inputs)
if "FAIL" in text:
    sys.stderr.write("Error producing PDF.\\n! LaTeX Error: simulated failure\\n")
    sys.exit(43)
if "NOOUTPUT" in text:
    sys.exit(0)
if "SLOW" in text:
    time.sleep(0.3)
out.write_bytes(b"%PDF-1.4\\n" + text.encode("utf-8") + b"\\n%%EOF\\n")
'''


class FakePandoc:
    def __init__(self, root: Path) -> None:
        self.script = root / "fake_pandoc.py"
        self.log = root / "calls.log"
        self.script.write_text(FAKE_PANDOC.format(log=str(self.log)), encoding="utf-8")

    @property
    def command(self) -> tuple[str, ...]:
        return (sys.executable, str(self.script))

    def calls(self) -> list[list[str]]:
        if not self.log.exists():
            return []
        return [line.split("\t") for line in self.log.read_text(encoding="utf-8").splitlines() if line]


@pytest.fixture
def fake_pandoc(tmp_path):
    return FakePandoc(tmp_path)


@pytest.fixture
def docs_dir(tmp_path):
    d = tmp_path / "docs"
    d.mkdir()
    (d / "01-intro.md").write_text("# Introduction\n\nHello.\n", encoding="utf-8")
    (d / "02-guide.md").write_text("# Guide\n\nSteps.\n", encoding="utf-8")
    (d / "broken.md").write_text("# Broken\n\nFAIL\n", encoding="utf-8")
    (d / "empty-output.md").write_text("NOOUTPUT\n", encoding="utf-8")
    (d / "slow.md").write_text("# Slow\n\nSLOW\n", encoding="utf-8")
    return d


@pytest.fixture
def defaults_file(tmp_path):
    p = tmp_path / "pandoc.defaults.yml"
    p.write_text("pdf-engine: xelatex\n", encoding="utf-8")
    return p


@pytest.fixture
def config(tmp_path, docs_dir, defaults_file, fake_pandoc):
    return ServiceConfig(
        docs_dir=docs_dir,
        output_dir=tmp_path / "pdf",
        pandoc_defaults=defaults_file,
        pandoc_command=fake_pandoc.command,
        enable_cache=True,
        engine_timeout_sec=30,
    )


@pytest.fixture
def service(config):
    return build_service(config)


def output_files(output_dir: Path) -> list[str]:
    """Top-level artifact names, ignoring the scratch directory."""
    return sorted(p.name for p in output_dir.iterdir() if p.is_file())


def scratch_entries(output_dir: Path) -> list[Path]:
    scratch = output_dir / ".work"
    return list(scratch.iterdir()) if scratch.exists() else []
