"""
Generation Studio - Streamlit front end
=======================================
Upload source images, write prompt variants, and watch a batch of image or
video generations fill the gallery. Failed or refused results can be retried
one by one or all at once; timed-out videos resume polling their job.

The orchestrator runs on an asyncio loop in a background thread; every
Streamlit rerun just renders the current store snapshot.
"""

import tempfile
from pathlib import Path

import streamlit as st
from streamlit.runtime.scriptrunner import add_script_run_ctx

from generation_studio.api import StudioAPIError, AuthenticationError, RateLimitError, PreflightValidationError
from generation_studio.orchestrator import BatchOrchestrator, ResultStatus, TaskKind
from generation_studio.utils import BackgroundLoop, load_config, parse_prompt_variants, setup_logging
from generation_studio.utils.config import CONFIG_PATH, ConfigError

logger = setup_logging()

STATUS_BADGES = {
    ResultStatus.PENDING: "⏳ pending",
    ResultStatus.SUCCESS: "✅ success",
    ResultStatus.WARNING: "⚠️ refused",
    ResultStatus.ERROR: "❌ error",
    ResultStatus.TIMED_OUT: "⌛ timed out",
}


# ============================================================================
# SESSION STATE
# ============================================================================

def init_session_state():
    """Initialize all session state variables."""
    if "orchestrator" in st.session_state:
        return

    try:
        config = load_config(CONFIG_PATH)
    except ConfigError as e:
        st.error(f"Invalid configuration in {CONFIG_PATH}: {e}")
        st.stop()

    defaults = {
        "config": config,
        "orchestrator": BatchOrchestrator.from_config(config) if config.api_token else None,
        "loop": BackgroundLoop(thread_hook=add_script_run_ctx),
        "upload_dir": Path(tempfile.mkdtemp(prefix="genstudio_uploads_")),
        "source_names": [],
        "set_id": "",
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value

    logger.debug(f"Session state initialized with {len(defaults)} default keys")


def handle_api_error(error: Exception, context: str = ""):
    """Display user-friendly messages for errors raised outside tasks."""
    logger.error(f"{context}: {error}")

    if isinstance(error, PreflightValidationError):
        st.error(str(error))
    elif isinstance(error, (AuthenticationError, RateLimitError)):
        st.error(error.get_user_message())
    elif isinstance(error, StudioAPIError):
        st.error(f"API Error [{error.status_code}]: {error.message}")
    else:
        st.error(f"Error: {str(error)}")


# ============================================================================
# UI COMPONENTS
# ============================================================================

def _save_uploads(files) -> list:
    upload_dir: Path = st.session_state.upload_dir
    paths = []
    for uploaded in files:
        path = upload_dir / uploaded.name
        path.write_bytes(uploaded.getvalue())
        paths.append(str(path))
    return paths


def render_generation_form(orchestrator: BatchOrchestrator):
    st.markdown("### 📤 Sources & Prompts")

    files = st.file_uploader("Source images", type=["png", "jpg", "jpeg", "webp"],
                             accept_multiple_files=True)
    kind = st.radio("Output", ["Image", "Video"], horizontal=True)

    prompts_text = st.text_area("Prompt variants (one per line, or a JSON array of strings)", height=150)
    cols = st.columns(2)
    prepend = cols[0].text_input("Prepend to every prompt")
    append = cols[1].text_input("Append to every prompt")

    if st.button("🚀 Generate", type="primary"):
        try:
            text = prompts_text.strip()
            prompts = parse_prompt_variants(text) if text.startswith("[") else \
                [line.strip() for line in text.splitlines() if line.strip()]
            sources = _save_uploads(files or [])
            tasks = orchestrator.build_batch(
                sources, prompts,
                kind=TaskKind.VIDEO if kind == "Video" else TaskKind.IMAGE,
                prepend=prepend, append=append,
            )
        except PreflightValidationError as e:
            handle_api_error(e, "Generate")
            return
        st.session_state.source_names = [f.name for f in files]
        st.session_state.loop.submit(orchestrator.generate(tasks))
        st.rerun()


def render_progress(orchestrator: BatchOrchestrator):
    progress = orchestrator.progress
    if progress.total:
        st.progress(progress.fraction, text=f"{progress.completed}/{progress.total} finished")


def render_toolbar(orchestrator: BatchOrchestrator):
    cols = st.columns(3)
    failed = [r for r in orchestrator.generation_results if r.status.is_retryable]
    if cols[0].button(f"🔁 Retry all ({len(failed)})", disabled=not failed):
        st.session_state.loop.submit(orchestrator.retry_all())
        st.rerun()
    if cols[1].button("🗑️ Clear gallery"):
        st.session_state.loop.call(orchestrator.clear_all)
        st.session_state.source_names = []
        st.rerun()
    if cols[2].button("🔄 Refresh"):
        st.rerun()


def render_result_card(orchestrator: BatchOrchestrator, result):
    st.caption(f"{STATUS_BADGES[result.status]} · source {result.source_index + 1}, "
               f"variant {result.variant_index + 1}")
    if result.status is ResultStatus.SUCCESS:
        if result.kind is TaskKind.VIDEO:
            st.video(result.url)
        else:
            st.image(result.url)
    elif result.status is ResultStatus.WARNING:
        st.warning(result.error)
        with st.expander("Model response"):
            st.write(result.model_response)
    elif result.error:
        st.error(result.error)

    key = str(result.key)
    buttons = st.columns(2)
    if result.status.is_retryable and buttons[0].button("Retry", key=f"retry_{key}"):
        st.session_state.loop.submit(orchestrator.retry_one(result.key))
        st.rerun()
    if buttons[1].button("Remove", key=f"remove_{key}"):
        st.session_state.loop.call(orchestrator.remove, result.key)
        st.rerun()


def render_gallery(orchestrator: BatchOrchestrator):
    results = orchestrator.generation_results
    if not results:
        st.info("No results yet.")
        return

    # newest batch first, stable order within a batch
    results = sorted(results, key=lambda r: -r.batch_timestamp)
    columns = st.columns(3)
    for index, result in enumerate(results):
        with columns[index % 3]:
            render_result_card(orchestrator, result)

    manifest = orchestrator.export_manifest(
        st.session_state.source_names,
        st.session_state.config.filename_template,
        st.session_state.set_id,
    )
    if manifest:
        with st.expander(f"📦 Export ({len(manifest)} files)"):
            for filename, url in manifest:
                st.markdown(f"[{filename}]({url})")


def main():
    """Main application entry point."""
    st.set_page_config(page_title="Generation Studio", layout="wide")
    init_session_state()

    st.title("🎨 Generation Studio")
    orchestrator = st.session_state.orchestrator
    if orchestrator is None:
        st.error(f"No API token configured. Set api_token in {CONFIG_PATH} or GENSTUDIO_API_TOKEN.")
        return

    st.session_state.set_id = st.sidebar.text_input("Set ID", value=st.session_state.set_id)

    render_generation_form(orchestrator)
    st.divider()
    render_progress(orchestrator)
    render_toolbar(orchestrator)
    render_gallery(orchestrator)


if __name__ == "__main__":
    main()
