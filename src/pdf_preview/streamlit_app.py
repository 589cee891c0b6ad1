import os
import io
import requests
import streamlit as st

from pdf_preview.utils import format_size

API_BASE = os.getenv("PDF_PREVIEW_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")
MAX_FILE_SIZE = 20 * 1024 * 1024


def _reset_state():
    for key in ["preview", "image", "error"]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    st.session_state["upload_key"] = st.session_state.get("upload_key", 0) + 1


def _create_preview(uploaded_file: io.BytesIO, mode: str) -> dict[str, object] | None:
    try:
        files = {"file": (uploaded_file.name, uploaded_file.getvalue(), uploaded_file.type or "application/pdf")}
        resp = requests.post(f"{API_BASE}/previews", params={"mode": mode}, files=files, timeout=120)
    except Exception as e:
        st.session_state["error"] = f"Failed to connect to API: {e}"
        return None
    if resp.status_code != 201:
        try:
            detail = resp.json().get("detail", {})
            message = detail.get("message", resp.text) if isinstance(detail, dict) else str(detail)
        except ValueError:
            message = resp.text
        st.session_state["error"] = f"Preview failed: {resp.status_code} {message}"
        return None
    return resp.json()


def _download_image(link: str) -> bytes | None:
    try:
        resp = requests.get(f"{API_BASE}{link}", timeout=60)
    except Exception as e:
        st.session_state["error"] = f"Download failed: {e}"
        return None
    if resp.status_code != 200:
        st.session_state["error"] = f"Download error: {resp.status_code} {resp.text}"
        return None
    return resp.content


def _delete_preview(link: str) -> None:
    try:
        requests.delete(f"{API_BASE}{link}", timeout=30)
    except Exception as e:
        st.session_state["error"] = f"Remove failed: {e}"


def main() -> None:
    st.set_page_config(page_title="PDF Preview", page_icon="📄", layout="centered")
    st.title("📄 PDF Preview")
    st.caption(f"API base: {API_BASE}")

    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    uploaded = st.file_uploader(
        f"Click to upload or drag and drop. PDF (max {format_size(MAX_FILE_SIZE)})",
        type=["pdf"],
        accept_multiple_files=False,
        key=f"uploader-{st.session_state['upload_key']}",
    )

    if uploaded is not None:
        st.write(f"**{uploaded.name}** · {format_size(uploaded.size)}")
        if uploaded.size > MAX_FILE_SIZE:
            st.error(f"File exceeds the {format_size(MAX_FILE_SIZE)} limit")
            return

        col1, col2, col3 = st.columns([1, 1, 1])
        with col1:
            render = st.button("Render preview", type="primary")
        with col2:
            placeholder = st.button("Placeholder card", type="secondary")
        with col3:
            if st.button("Remove file", type="secondary"):
                if preview := st.session_state.get("preview"):
                    _delete_preview(str(preview["links"]["image"]))
                _reset_state()
                st.rerun()

        if render or placeholder:
            with st.spinner("Converting PDF..."):
                preview = _create_preview(uploaded, "placeholder" if placeholder else "render")
            if preview:
                st.session_state["preview"] = preview
                st.session_state["image"] = _download_image(str(preview["links"]["image"]))

    if (preview := st.session_state.get("preview")) and st.session_state.get("image"):
        file_info = preview["file"]
        st.image(st.session_state["image"], caption=file_info["name"])
        st.download_button(
            label="Download image",
            data=st.session_state["image"],
            file_name=file_info["name"],
            mime=file_info["media_type"],
        )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
