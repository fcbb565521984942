import os
import time

import requests
import streamlit as st

API_BASE = os.getenv("DOCCRAFT_API_BASE", os.getenv("API_BASE", "http://localhost:3000")).rstrip("/")


def _reset_state():
    for key in ["pdf_bytes", "pdf_name", "cached", "error"]:
        if key in st.session_state:
            del st.session_state[key]


def _check_health() -> dict[str, object] | None:
    try:
        resp = requests.get(f"{API_BASE}/health", timeout=10)
    except requests.RequestException:
        return None
    if resp.status_code != 200:
        return None
    return resp.json()


def _filename_from_disposition(value: str | None, default: str = "document.pdf") -> str:
    if not value or "filename=" not in value:
        return default
    return value.split("filename=", 1)[1].strip().strip('"') or default


def _fetch_pdf(params: dict[str, str]) -> tuple[bytes, str, bool] | None:
    """Request a PDF from the API; on failure store a message under ``error``."""
    # Only connection failures are retried; an HTTP error is a real answer.
    max_attempts = 3
    backoff = 0.5
    for attempt in range(1, max_attempts + 1):
        try:
            resp = requests.get(f"{API_BASE}/pdf", params=params, timeout=600)
        except requests.RequestException as e:
            if attempt < max_attempts:
                time.sleep(backoff)
                backoff *= 1.5
                continue
            st.session_state["error"] = f"Failed to connect to API: {e}"
            return None
        if resp.status_code == 200:
            name = _filename_from_disposition(resp.headers.get("Content-Disposition"))
            cached = resp.headers.get("X-DocCraft-Cache") == "hit"
            return resp.content, name, cached
        try:
            body = resp.json()
            message = f"{body.get('error', 'Error')}: {body.get('message', resp.text)}"
        except ValueError:
            message = resp.text
        st.session_state["error"] = f"{resp.status_code} {message}"
        return None
    return None


def main() -> None:
    st.set_page_config(page_title="DocCraft PDF", page_icon="📄", layout="centered")
    st.title("📄 DocCraft PDF")
    st.caption(f"API base: {API_BASE}")

    health = _check_health()
    if health is None:
        st.warning("API is not reachable")
    elif not health.get("pandoc"):
        st.warning("Pandoc is not available on the server; generation will fail")

    with st.form("generate"):
        docs = st.text_input("Documents (comma-separated)", value="01-intro.md,02-guide.md")
        title = st.text_input("Title", value="Document")
        subtitle = st.text_input("Subtitle")
        author = st.text_input("Author")
        date = st.text_input("Date (leave empty for today)")
        submitted = st.form_submit_button("Generate PDF", type="primary")

    if submitted:
        _reset_state()
        params = {"docs": docs, "title": title, "subtitle": subtitle, "author": author, "date": date}
        with st.spinner("Generating PDF..."):
            res = _fetch_pdf({k: v for k, v in params.items() if v})
        if res:
            pdf_bytes, name, cached = res
            st.session_state["pdf_bytes"] = pdf_bytes
            st.session_state["pdf_name"] = name
            st.session_state["cached"] = cached

    if "pdf_bytes" in st.session_state:
        st.success(f"Ready: {st.session_state['pdf_name']} ({len(st.session_state['pdf_bytes']) / 1024:.1f} KB)")
        st.caption("Served from cache" if st.session_state.get("cached") else "Freshly generated")
        st.download_button(
            label="Download PDF",
            data=st.session_state["pdf_bytes"],
            file_name=st.session_state["pdf_name"],
            mime="application/pdf",
        )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
