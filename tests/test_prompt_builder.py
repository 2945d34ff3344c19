"""
Tests for prompt assembly

Run with: pytest tests/test_prompt_builder.py -v
"""
from models.conversation_models import Message, MessageRole
from models.graph_models import EnrichedContext, GraphNode, NodeType
from services.prompt_builder import SYSTEM_PROMPT, build_history_string, build_user_message


def _enriched(**overrides) -> EnrichedContext:
    values = {
        "relevantNodes": [GraphNode(id="d1", type=NodeType.DOCUMENT, relevanceScore=0.876, reason="About indexes")],
        "keyInsights": ["Insight one", "Insight two"],
        "missingInformation": ["Deadline of the project"],
    }
    values.update(overrides)
    return EnrichedContext(**values)


class TestBuildUserMessage:
    def test_minimal_message(self):
        assert build_user_message("Q?", "CTX") == "USER CONTEXT:\nCTX\n\nUSER QUESTION: Q?"

    def test_full_section_order(self):
        message = build_user_message("Q?", "CTX", _enriched(), "USER: hi\nASSISTANT: hello")

        headers = [
            "CONVERSATION HISTORY:",
            "USER CONTEXT:",
            "KEY INSIGHTS:",
            "NOTE - Missing information that might help:",
            "MOST RELEVANT NODES:",
            "USER QUESTION: Q?",
        ]
        positions = [message.index(header) for header in headers]
        assert positions == sorted(positions)
        assert message.endswith("USER QUESTION: Q?")

    def test_bullets_and_node_lines(self):
        message = build_user_message("Q?", "CTX", _enriched())

        assert "KEY INSIGHTS:\n- Insight one\n- Insight two" in message
        assert "- Deadline of the project" in message
        assert "- d1 (Document): About indexes [Score: 88%]" in message

    def test_empty_enrichment_lists_omit_headers(self):
        message = build_user_message("Q?", "CTX", EnrichedContext())

        assert "KEY INSIGHTS" not in message
        assert "Missing information" not in message
        assert "MOST RELEVANT NODES" not in message
        assert message == build_user_message("Q?", "CTX")

    def test_only_insights_present(self):
        message = build_user_message("Q?", "CTX", _enriched(relevantNodes=[], missingInformation=[]))
        assert "KEY INSIGHTS:" in message
        assert "NOTE -" not in message
        assert "MOST RELEVANT NODES:" not in message

    def test_node_without_reason_or_score(self):
        node = GraphNode(id="t1", type=NodeType.TOPIC)
        message = build_user_message("Q?", "CTX", _enriched(relevantNodes=[node]))
        assert "- t1 (Topic): Relevant to query [Score: 0%]" in message

    def test_at_most_five_nodes_highest_scores_first(self):
        nodes = [GraphNode(id=f"n{i}", type=NodeType.TOPIC, relevanceScore=i / 10) for i in range(8)]
        message = build_user_message("Q?", "CTX", _enriched(relevantNodes=nodes))

        section = message.split("MOST RELEVANT NODES:\n")[1].split("\n\n")[0]
        lines = section.splitlines()
        assert len(lines) == 5
        assert lines[0].startswith("- n7 ")
        assert lines[-1].startswith("- n3 ")

    def test_no_history_header_when_history_empty(self):
        assert "CONVERSATION HISTORY" not in build_user_message("Q?", "CTX", None, "")


class TestHistory:
    def test_roles_upper_cased(self):
        history = [
            Message(role=MessageRole.USER, content="hi"),
            {"role": "assistant", "content": "hello"},
        ]
        assert build_history_string(history) == "USER: hi\nASSISTANT: hello"

    def test_keeps_last_ten_turns(self):
        history = [{"role": "user", "content": f"m{i}"} for i in range(15)]
        lines = build_history_string(history).splitlines()

        assert len(lines) == 10
        assert lines[0] == "USER: m5"
        assert lines[-1] == "USER: m14"

    def test_empty(self):
        assert build_history_string(None) == ""
        assert build_history_string([]) == ""


def test_system_prompt_mentions_guidelines():
    assert SYSTEM_PROMPT.startswith("You are a context-aware AI assistant")
    assert "GUIDELINES:" in SYSTEM_PROMPT
    assert "RESPONSE FORMAT:" in SYSTEM_PROMPT
