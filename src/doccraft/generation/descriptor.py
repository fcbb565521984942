from pathlib import Path

import yaml

from .errors import ArtifactIOError
from .models import Metadata


def render_descriptor(metadata: Metadata) -> str:
    """Render metadata as a pandoc YAML front-matter block.

    Empty fields are left out entirely so pandoc's template falls back to
    its own defaults instead of printing a blank subtitle or author line.
    """
    fields = {k: v for k, v in metadata.as_dict().items() if v}
    body = yaml.safe_dump(fields, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"---\n{body}---\n\n"


def write_descriptor(metadata: Metadata, directory: Path, request_token: str) -> Path:
    path = Path(directory) / f"metadata_{request_token}.yml"
    try:
        # "x" mode: a descriptor is never shared or overwritten across requests
        with path.open("x", encoding="utf-8") as f:
            f.write(render_descriptor(metadata))
    except OSError as e:
        raise ArtifactIOError(f"Could not write metadata descriptor {path.name}: {e}") from e
    return path
