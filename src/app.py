"""
Slide Tutor - Main Application
----------------------------
A Streamlit application showing a PDF slide deck next to an AI tutor chat
that explains slides, switches pages and draws diagrams on a side canvas.
"""

import asyncio
import hashlib
import logging
from pathlib import Path

import streamlit as st
import streamlit.components.v1 as components
from dotenv import load_dotenv

from slide_tutor.canvas import render_canvas_html
from slide_tutor.chat_session import ChatSession
from slide_tutor.config import Settings, setup_logging
from slide_tutor.llm_interface import LLMInterface
from slide_tutor.slide_context import BUNDLED_CONTEXTS, ContextStore, context_from_text
from slide_tutor.slide_processor import SlideProcessor, ZoomState

# Load environment variables
load_dotenv()

settings = Settings.from_env(load_env_file=False)
setup_logging(settings.log_file)
logger = logging.getLogger(__name__)

# Configure Streamlit page
st.set_page_config(
    page_title="Slide Tutor",
    page_icon="🎓",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_resource
def load_base_store(path: str) -> ContextStore:
    """Load the curated slide contexts once per server process."""
    return ContextStore.from_json(path)


@st.cache_data(show_spinner=False)
def render_page_png(pdf_bytes: bytes, page: int, dpi: int) -> bytes:
    """Render one PDF page to PNG bytes, cached per deck, page and resolution."""
    image = SlideProcessor.render_page(pdf_bytes, page, dpi=dpi)
    return SlideProcessor.image_to_bytes(image)


def build_upload_contexts(pdf_bytes: bytes, total_pages: int) -> dict:
    """
    Derive slide contexts from the text of an uploaded deck.

    Parameters
    ----------
    pdf_bytes : bytes
        The uploaded PDF.
    total_pages : int
        Number of pages in the PDF.

    Returns
    -------
    dict
        Contexts keyed by page number, for pages that carry text.
    """
    contexts = {}
    for page in range(1, total_pages + 1):
        try:
            text = SlideProcessor.extract_text(pdf_bytes, page)
        except ValueError as e:
            logger.warning(f"Could not extract text from page {page}: {e}")
            continue
        context = context_from_text(page, text)
        if context is not None:
            contexts[page] = context
    return contexts


def new_session() -> ChatSession:
    """Create a chat session showing the default deck."""
    store = load_base_store(str(settings.contexts_path or BUNDLED_CONTEXTS)).copy()
    session = ChatSession(LLMInterface(settings), store, settings)

    default_pdf = Path(settings.default_pdf)
    if default_pdf.exists():
        pdf_bytes = default_pdf.read_bytes()
        st.session_state.pdf_bytes = pdf_bytes
        session.load_document(f"/{default_pdf.name}", SlideProcessor.page_count(pdf_bytes))
    else:
        logger.warning(f"Default PDF {default_pdf} not found, waiting for an upload")
    return session


# Initialize session state
if "pdf_bytes" not in st.session_state:
    st.session_state.pdf_bytes = None
if "pdf_digest" not in st.session_state:
    st.session_state.pdf_digest = None
if "show_canvas" not in st.session_state:
    st.session_state.show_canvas = True
if "zoom" not in st.session_state:
    st.session_state.zoom = ZoomState()
if "chat_session" not in st.session_state:
    st.session_state.chat_session = new_session()


def load_upload(uploaded_file) -> None:
    """Switch the session to an uploaded deck."""
    session = st.session_state.chat_session
    pdf_bytes = SlideProcessor.read_bytes(uploaded_file)
    digest = hashlib.sha1(pdf_bytes).hexdigest()
    if digest == st.session_state.pdf_digest:
        return

    with st.spinner("Processing new slides..."):
        total_pages = SlideProcessor.page_count(pdf_bytes)
        pdf_url = f"upload://{digest[:12]}/{uploaded_file.name}"
        session.store.add_deck(pdf_url, build_upload_contexts(pdf_bytes, total_pages))
        session.load_document(pdf_url, total_pages)

    st.session_state.pdf_bytes = pdf_bytes
    st.session_state.pdf_digest = digest
    st.session_state.show_canvas = True


def render_sidebar(session: ChatSession) -> None:
    with st.sidebar:
        st.title("⚙️ Configuration")

        uploaded_file = st.file_uploader(
            "Upload PDF",
            type=["pdf"],
            help="Upload a slide deck exported as PDF"
        )
        if uploaded_file is not None:
            try:
                load_upload(uploaded_file)
            except ValueError as e:
                st.error(f"Could not read the PDF: {e}")

        st.subheader("Model")
        st.caption(f"{settings.llm_model} @ {settings.llm_base_url}")
        st.caption(f"Temperature {settings.temperature}, up to {settings.max_tool_calls} tool calls per turn")
        if not settings.llm_api_key:
            st.warning("LLM_API_KEY is not set")

        st.markdown("---")
        st.subheader("💭 Chat")
        if st.button("🗑️ Clear chat", help="Clear chat history"):
            session.clear_messages()
            st.rerun()

        if session.canvas.visible:
            st.markdown("---")
            st.subheader("🖼️ Canvas")
            st.session_state.show_canvas = st.toggle(
                "Show canvas",
                value=st.session_state.show_canvas
            )
            if st.button("Clear canvas"):
                session.clear_canvas()
                st.rerun()


def render_slides(session: ChatSession) -> None:
    header_col1, header_col2 = st.columns([3, 1])
    with header_col1:
        st.subheader("📑 Slides")
        st.progress(session.current_page / session.total_pages, "Slide Progress")
    with header_col2:
        st.markdown(f"**Page {session.current_page} of {session.total_pages}**")

    zoom = st.session_state.zoom
    zoom_col1, zoom_col2, zoom_col3, zoom_col4 = st.columns([1, 1, 1, 2])
    with zoom_col1:
        if st.button("➖", help="Zoom out", use_container_width=True):
            zoom.zoom_out()
            st.rerun()
    with zoom_col2:
        if st.button("➕", help="Zoom in", use_container_width=True):
            zoom.zoom_in()
            st.rerun()
    with zoom_col3:
        if st.button("↔️", help="Fit to width", use_container_width=True, disabled=zoom.fit_width):
            zoom.reset()
            st.rerun()
    with zoom_col4:
        st.caption(f"Zoom: {zoom.label}")

    try:
        png = render_page_png(st.session_state.pdf_bytes, session.current_page, zoom.dpi)
        # Zoomed pages keep the size of their rendering resolution
        st.image(png, use_container_width=zoom.fit_width)
    except ValueError as e:
        st.warning(f"Could not render page {session.current_page}: {e}")
        if session.slide_context:
            st.markdown(f"### {session.slide_context.title}\n\n{session.slide_context.content}")

    nav_col1, nav_col2 = st.columns(2)
    with nav_col1:
        if st.button("⬅️ Previous", use_container_width=True, disabled=session.current_page <= 1):
            session.change_page(session.current_page - 1)
            st.rerun()
    with nav_col2:
        if st.button("Next ➡️", use_container_width=True,
                     disabled=session.current_page >= session.total_pages):
            session.change_page(session.current_page + 1)
            st.rerun()


async def render_chat(session: ChatSession) -> None:
    st.subheader("🎓 Tutor")

    if session.error:
        st.error(f"Error: {session.error}")

    for message in session.visible_messages():
        if message.role == "tool":
            with st.expander(f"🔧 {message.preview()}"):
                st.text(message.content)
            continue
        with st.chat_message(message.role):
            st.write(message.content)

    if prompt := st.chat_input("Ask about the slides..."):
        with st.spinner("Thinking..."):
            await session.send_message(prompt)
        st.rerun()


def render_canvas(session: ChatSession) -> None:
    st.subheader("🖼️ Canvas")
    html = render_canvas_html(session.canvas)
    if html:
        components.html(html, height=700, scrolling=True)


async def main():
    """Main application function."""
    session = st.session_state.chat_session
    render_sidebar(session)

    if not st.session_state.pdf_bytes or session.total_pages == 0:
        st.title("🎓 Slide Tutor")
        st.markdown("""
        Welcome to Slide Tutor! Get started by:
        1. Uploading a slide deck as PDF
        2. Reading the tutor's explanation of each slide
        3. Asking questions, the tutor can switch slides and draw diagrams
        """)
        return

    # First visit of a page asks the tutor for an explanation
    if session.slide_context is not None and session.current_page not in session.intro_generated:
        with st.spinner("Explaining this slide..."):
            introduced = await session.introduce_current_page()
        if introduced:
            st.rerun()

    show_canvas = session.canvas.visible and st.session_state.show_canvas
    if show_canvas:
        slides_col, chat_col, canvas_col = st.columns([3, 2, 2])
    else:
        slides_col, chat_col = st.columns([3, 2])

    with slides_col:
        render_slides(session)
    with chat_col:
        await render_chat(session)
    if show_canvas:
        with canvas_col:
            render_canvas(session)


if __name__ == "__main__":
    asyncio.run(main())
