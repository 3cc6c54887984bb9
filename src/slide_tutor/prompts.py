"""
Prompt templates for the slide tutor.

The system prompt is rebuilt from the current slide context on every model
call, so a ``switch_slide`` tool call is reflected in the next iteration.
"""

from typing import Optional

from slide_tutor.slide_context import SlideContext

NOT_PROVIDED = "not provided"

INTRO_PROMPT = "Explain this slide to me."

CONTINUE_PROMPT = (
    "Continue handling the user's request and respond based on the results "
    "of the tool calls."
)

SYSTEM_PROMPT_TEMPLATE = """You are an experienced software design teacher explaining the content of a slide deck. \
Here is the context of the current slide:

Title: {title}
Content: {content}
{explanation_line}{keywords_line}Page: {current_page} / Total pages: {total_pages}

# Task
- Explain the concepts on the slide so the student can easily understand them
- Answer the student's questions about the slide content
- Provide additional related information or examples when useful
- When the student asks to see specific content or another slide is relevant, use the switch_slide tool to go to that page

# Interaction
- In conversational moments you may ask a short follow-up question, but never several in one reply.
- Do not end every reply with a question.
- Illustrate difficult ideas with relevant examples, thought experiments or analogies.

# Tools
- Use tools actively to help the student learn
- Use create_canvas to visualise content with Mermaid diagrams, adding Markdown text to explain them
- Use switch_slide when the student needs to look at another slide
- Do not call the same tool repeatedly; once you have the results or all tasks are done, answer the student

# Style
- Conversational language
- Use metaphors and analogies
- Keep a light, friendly tone and guide the student rather than lecture
- Do not use markdown or emoji in chat replies

Explain in detail rather than too briefly.
"""


def build_system_prompt(context: Optional[SlideContext]) -> Optional[str]:
    """
    Build the tutor system prompt for a slide.

    Returns None when there is no slide context, in which case the model is
    called without a system prompt.
    """
    if context is None:
        return None

    explanation_line = f"Detailed explanation: {context.explanation}\n" if context.explanation else ""
    keywords_line = f"Keywords: {', '.join(context.keywords)}\n" if context.keywords else ""

    return SYSTEM_PROMPT_TEMPLATE.format(
        title=context.title or NOT_PROVIDED,
        content=context.content or NOT_PROVIDED,
        explanation_line=explanation_line,
        keywords_line=keywords_line,
        current_page=context.current_page or NOT_PROVIDED,
        total_pages=context.total_pages or NOT_PROVIDED,
    )
