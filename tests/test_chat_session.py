import asyncio

from conftest import ScriptedLLM, text_reply, tool_reply
from slide_tutor.chat_session import ChatMessage, ChatSession
from slide_tutor.prompts import CONTINUE_PROMPT, INTRO_PROMPT
from slide_tutor.slide_context import DEFAULT_DECK
from slide_tutor.tools import ToolCall


def make_session(settings, store, replies=(), repeat_last=False, **kwargs):
    llm = ScriptedLLM(settings, list(replies), repeat_last=repeat_last)
    session = ChatSession(llm, store, settings, **kwargs)
    session.load_document(DEFAULT_DECK, 10)
    return session, llm


def test_load_document_loads_first_page(settings, store):
    session, _ = make_session(settings, store)
    assert session.current_page == 1
    assert session.slide_context.title == "Design Patterns II"
    assert (session.slide_context.current_page, session.slide_context.total_pages) == (1, 10)


def test_plain_reply(settings, store):
    session, llm = make_session(settings, store, [text_reply("The cover page.")])
    asyncio.run(session.send_message("What is this?"))

    assert len(llm.calls) == 1
    assert "Title: Design Patterns II" in llm.calls[0]["system_prompt"]
    assert llm.calls[0]["tools"] is not None
    assert [m.role for m in session.messages] == ["user", "assistant"]
    assert session.visible_messages()[-1].content == "The cover page."
    assert session.error is None
    assert not session.is_loading


def test_blank_message_is_ignored(settings, store):
    session, llm = make_session(settings, store)
    asyncio.run(session.send_message("   "))
    assert llm.calls == []
    assert session.messages == []


def test_switch_slide_tool(settings, store):
    session, llm = make_session(settings, store, [
        tool_reply("switch_slide", '{"pageNumber": 9}'),
        text_reply("Here is the structure."),
    ])
    asyncio.run(session.send_message("Show me the structure of the pattern"))

    assert session.current_page == 9
    assert 9 in session.intro_generated
    assert session.llm_initiated_page_change
    tool_message = next(m for m in session.messages if m.role == "tool")
    assert tool_message.tool_call_id == "call_1"
    assert tool_message.content == (
        "Successfully switched to slide 9. New context: Observer Pattern Structure"
    )
    # The next call sees the context of the new slide
    assert "Title: Observer Pattern Structure" in llm.calls[1]["system_prompt"]
    assert llm.calls[1]["messages"][-1] == {"role": "system", "content": CONTINUE_PROMPT}
    assert session.tool_call_count == 1


def test_switch_to_invalid_slide(settings, store):
    session, _ = make_session(settings, store, [
        tool_reply("switch_slide", {"pageNumber": 42}),
        text_reply("That slide does not exist."),
    ])
    asyncio.run(session.send_message("Go to slide 42"))

    assert session.current_page == 1
    tool_message = next(m for m in session.messages if m.role == "tool")
    assert tool_message.content.startswith("Error: Failed to switch to slide 42")


def test_create_canvas_tool(settings, store):
    diagram = "```mermaid\ngraph TD\n  Subject-->Observer\n```"
    session, _ = make_session(settings, store, [
        tool_reply("create_canvas", {"content": diagram}),
        text_reply("I drew it on the canvas."),
    ])
    asyncio.run(session.send_message("Draw it"))

    assert session.canvas.visible
    assert session.canvas.content == diagram
    session.clear_canvas()
    assert not session.canvas.visible


def test_tool_loop_is_capped(settings, store):
    # The model never stops asking for a canvas
    session, llm = make_session(
        settings, store,
        [tool_reply("create_canvas", {"content": "again"})],
        repeat_last=True,
    )
    asyncio.run(session.send_message("Draw forever"))

    # 3 allowed rounds, 1 capped round, 1 final answer without tools
    assert len(llm.calls) == settings.max_tool_calls + 2
    assert llm.calls[-1]["tools"] is None
    assert session.tool_call_count == settings.max_tool_calls
    tool_messages = [m for m in session.messages if m.role == "tool"]
    assert len(tool_messages) == settings.max_tool_calls + 1
    assert tool_messages[-1].content.startswith("Maximum number of tool calls (3) reached")
    # The final reply's unanswered calls are dropped
    assert session.messages[-1].role == "assistant"
    assert session.messages[-1].tool_calls == []


def test_several_calls_in_one_reply_share_the_cap(settings, store):
    calls = [ToolCall(f"call_{i}", "create_canvas", {"content": str(i)}) for i in range(5)]
    reply = text_reply("")
    reply.tool_calls = calls
    session, llm = make_session(settings, store, [reply, text_reply("done")])
    asyncio.run(session.send_message("Draw five things"))

    tool_messages = [m for m in session.messages if m.role == "tool"]
    assert [m.tool_call_id for m in tool_messages] == [f"call_{i}" for i in range(5)]
    assert sum(m.content == "Canvas created successfully." for m in tool_messages) == 3
    assert session.canvas.content == "2"
    assert llm.calls[-1]["tools"] is None


def test_tool_count_resets_per_user_message(settings, store):
    session, _ = make_session(settings, store, [
        tool_reply("create_canvas", {"content": "a"}),
        text_reply("first"),
        text_reply("second"),
    ])
    asyncio.run(session.send_message("one"))
    assert session.tool_call_count == 1
    asyncio.run(session.send_message("two"))
    assert session.tool_call_count == 0


def test_model_error_is_reported(settings, store):
    session, _ = make_session(settings, store, [RuntimeError("LLM API request failed with status 500")])
    asyncio.run(session.send_message("hello"))

    assert session.error == "LLM API request failed with status 500"
    assert session.tool_call_count == 0
    assert not session.is_loading
    assert [m.role for m in session.messages] == ["user"]


def test_introduce_current_page_once(settings, store):
    session, llm = make_session(settings, store, [text_reply("Welcome to design patterns.")])

    assert asyncio.run(session.introduce_current_page())
    assert llm.calls[0]["messages"][-1] == {"role": "user", "content": INTRO_PROMPT}
    assert 1 in session.intro_generated

    assert not asyncio.run(session.introduce_current_page())
    assert len(llm.calls) == 1


def test_no_intro_after_model_switch(settings, store):
    session, llm = make_session(settings, store, [
        tool_reply("switch_slide", {"pageNumber": 3}),
        text_reply("Look at the weather station."),
    ])
    asyncio.run(session.send_message("Where is the example?"))

    assert not asyncio.run(session.introduce_current_page())
    assert not session.llm_initiated_page_change
    assert len(llm.calls) == 2


def test_user_page_change(settings, store):
    session, _ = make_session(settings, store)
    assert session.change_page(4)
    assert session.slide_context.title == "What Needs to Be Done?"
    assert not session.change_page(0)
    assert not session.change_page(11)
    assert session.current_page == 4


def test_page_without_context(settings, store):
    store.add_deck("upload://1/deck.pdf", {})
    session, _ = make_session(settings, store)
    session.load_document("upload://1/deck.pdf", 2)
    assert session.slide_context is None
    assert session.switch_slide(2) is None
    assert session.current_page == 2


def test_clear_messages(settings, store):
    session, _ = make_session(settings, store, [text_reply("hi")])
    asyncio.run(session.introduce_current_page())
    session.clear_messages()
    assert session.messages == []
    assert session.intro_generated == set()


def test_without_history_only_latest_turn_is_sent(settings, store):
    session, llm = make_session(
        settings, store,
        [text_reply("first answer"), text_reply("second answer")],
        include_history=False,
    )
    asyncio.run(session.send_message("first"))
    asyncio.run(session.send_message("second"))

    assert llm.calls[1]["messages"] == [{"role": "user", "content": "second"}]


def test_history_wire_format(settings, store):
    session, _ = make_session(settings, store, [
        tool_reply("switch_slide", {"pageNumber": 2}),
        text_reply("Moved."),
    ])
    asyncio.run(session.send_message("next chapter"))

    history = session.history_for_api()
    assistant = history[1]
    assert assistant["content"] is None
    assert assistant["tool_calls"][0]["function"]["arguments"] == '{"pageNumber": 2}'
    assert history[2] == {
        "role": "tool",
        "content": "Successfully switched to slide 2. New context: The Observer Pattern",
        "tool_call_id": "call_1",
    }


def test_tool_results_are_visible(settings, store):
    session, _ = make_session(settings, store, [
        tool_reply("switch_slide", {"pageNumber": 5}),
        text_reply("Here is the example."),
    ])
    asyncio.run(session.send_message("Show me the example"))

    visible = session.visible_messages()
    assert [m.role for m in visible] == ["user", "tool", "assistant"]
    assert visible[1].content.startswith("Successfully switched to slide 5.")


def test_tool_message_preview():
    short = ChatMessage(role="tool", content="Canvas created successfully.")
    assert short.preview() == "Canvas created successfully."

    result = "Successfully switched to slide 5. New context: Observer Pattern Example"
    long = ChatMessage(role="tool", content=result)
    assert long.preview() == result[:50] + "..."
    assert len(long.preview()) == 53
