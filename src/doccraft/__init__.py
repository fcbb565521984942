"""
DocCraft PDF package.

Renders sets of Markdown documents plus title-page metadata into PDFs with
pandoc, caching each artifact under a key derived from its inputs. Front ends:
FastAPI (`doccraft.webapi`), CLI (`doccraft.cli`) and Streamlit UI.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
