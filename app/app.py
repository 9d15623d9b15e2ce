# ======================================================
# VisionQuest: Can I Read It?
# ======================================================

import asyncio
import hashlib
import sys
import threading
from datetime import datetime
from pathlib import Path

import streamlit as st

# ======================================================
# PATHS
# ======================================================
ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from visionquest.config import DATA_DIR, GEMINI_API_KEY, load_model_url
from visionquest.exceptions import ValidationError, VisionQuestError
from visionquest.frame import load_image
from visionquest.gemini_client import GeminiTextGenerator
from visionquest.logs import setup_logging
from visionquest.models import FeedbackKind, Phase
from visionquest.session import build_machine
from visionquest.storage import JsonStore

# Streamlit Cloud provides secrets in TOML; prefer env var but fall back to Streamlit secrets when available
API_KEY = GEMINI_API_KEY or (st.secrets.get("GEMINI_API_KEY", "") if hasattr(st, "secrets") else "")

# ======================================================
# STREAMLIT CONFIG
# ======================================================
st.set_page_config(page_title="Can I Read It?", layout="wide")


@st.cache_resource
def get_store():
    setup_logging()
    return JsonStore(DATA_DIR)


@st.cache_resource
def get_generator():
    return GeminiTextGenerator(api_key=API_KEY)


@st.cache_resource
def get_loop():
    """One event loop for every machine; insight and reset tasks outlive a rerun."""
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, name="visionquest-loop", daemon=True).start()
    return loop


store = get_store()

# ======================================================
# SESSION SAFETY
# ======================================================
if "machine" not in st.session_state:
    st.session_state.machine = build_machine(store, get_generator())
for k in ["last_image_hash", "input_source", "model_load_attempted"]:
    if k not in st.session_state:
        st.session_state[k] = None

machine = st.session_state.machine


# ======================================================
# HELPERS
# ======================================================
def file_hash(uploaded_file):
    uploaded_file.seek(0)
    h = hashlib.md5(uploaded_file.read()).hexdigest()
    uploaded_file.seek(0)
    return h


def run(coro):
    """Run a coroutine on the machine's loop and wait for its result."""
    return asyncio.run_coroutine_threadsafe(coro, get_loop()).result()


async def _invoke(fn, *args):
    return fn(*args)


def call(fn, *args):
    # synchronous transitions cancel tasks, so they also run on the loop
    return run(_invoke(fn, *args))


def view_key():
    session = machine.session
    return machine.phase, id(session), session.candidate_cursor if session else None


@st.fragment(run_every=1.0)
def insight_panel(rendered_for):
    if view_key() != rendered_for:
        st.rerun()

    session = machine.session
    if session is None:
        return
    if session.feedback_given:
        st.success(session.feedback_response or "Feedback recorded.")
    elif session.insight_loading:
        st.markdown("**Neural Insight**")
        st.caption("Loading...")
    elif session.insight:
        st.markdown("**Neural Insight**")
        st.write(f'"{session.insight}"')


# ======================================================
# LOAD MODEL
# ======================================================
if not st.session_state.model_load_attempted:
    st.session_state.model_load_attempted = True
    with st.spinner("Syncing brain..."):
        run(machine.load_model(load_model_url(store)))

# ======================================================
# HEADER
# ======================================================
st.title("Can I Read It?")
st.caption("Neural Vision Assistant")

with st.expander("⚙️ Model Configuration", expanded=False):
    model_url = st.text_input("Exported URL", value=machine.model_url or load_model_url(store))
    if st.button("Reload Model"):
        with st.spinner("Syncing brain..."):
            run(machine.load_model(model_url))
        st.rerun()

if machine.phase is Phase.ERROR and machine.error:
    st.error(machine.error)
    if machine.classifier is not None and st.button("Re-acquire input"):
        call(machine.new_frame_selected)
        st.rerun()

if not API_KEY:
    st.info("GEMINI_API_KEY is not set; insights will use canned messages.")

left, right = st.columns(2)

# ======================================================
# INPUT
# ======================================================
with left:
    source = st.radio("Input", ["Drive / Files", "Live Camera"], horizontal=True)
    mirrored = st.toggle("Mirror", value=False)

    if st.session_state.input_source != source:
        st.session_state.input_source = source
        st.session_state.last_image_hash = None
        call(machine.new_frame_selected)

    if source == "Live Camera":
        uploaded_file = st.camera_input("Capture a frame")
    else:
        uploaded_file = st.file_uploader("Upload to module", type=["jpg", "jpeg", "png", "webp"])

    img = None
    if uploaded_file:
        img_hash = file_hash(uploaded_file)
        if st.session_state.last_image_hash != img_hash:
            st.session_state.last_image_hash = img_hash
            call(machine.new_frame_selected)
        img = load_image(uploaded_file)
        st.image(img, caption="Preview", width="content")

    analyzing = machine.phase is Phase.ANALYZING
    if st.button(
        "Analyzing..." if analyzing else "Analyze Current Frame",
        disabled=img is None or not machine.can_analyze,
    ):
        with st.spinner("Analyzing..."):
            try:
                run(machine.analyze(img, mirrored))
            except VisionQuestError as e:
                st.warning(str(e))
        st.rerun()

    # ======================================================
    # MEMORY LOG
    # ======================================================
    if machine.history:
        st.subheader("Memory Log")
        for item in machine.history:
            colour = "red" if item.kind is FeedbackKind.CORRECTION else "green"
            when = datetime.fromtimestamp(item.timestamp / 1000).strftime("%H:%M")
            st.markdown(f":{colour}[**{item.kind.value}**] {item.corrected_label} · {when}")
        if st.button("Clear"):
            call(machine.clear_history)
            st.rerun()

# ======================================================
# RESULTS & FEEDBACK
# ======================================================
with right:
    session = machine.session
    phase = machine.phase

    if phase is Phase.MANUAL_ENTRY:
        st.subheader("Manual Entry")
        with st.form("manual_entry"):
            label = st.text_input("Enter correct label", placeholder="Type label...")
            submitted = st.form_submit_button("Log Feedback")
        if submitted:
            try:
                run(machine.submit_manual(label))
                st.rerun()
            except ValidationError:
                st.warning("Please provide a label.")
        if st.button("Cancel"):
            call(machine.cancel_manual)
            st.rerun()

    elif session and session.predictions:
        st.subheader("Detected Signal")
        candidate = session.current_candidate
        st.markdown(f"# {candidate.label}")
        st.caption(f"{candidate.probability * 100:.0f}% Certainty")

        if phase is Phase.REVIEWING and not session.feedback_given:
            if st.button("Yes, Correct", type="primary"):
                run(machine.confirm())
                st.rerun()
            if st.button("Incorrect Guess"):
                run(machine.reject())
                st.rerun()
            if st.button("Add to Memory Module"):
                call(machine.open_manual_entry)
                st.rerun()

        with st.expander("All predictions"):
            for pred in session.predictions:
                st.progress(min(max(pred.probability, 0.0), 1.0), text=f"{pred.label}: {pred.probability * 100:.0f}%")

    else:
        st.subheader("Awaiting Input")
        st.markdown("### READY")

    insight_panel(view_key())
