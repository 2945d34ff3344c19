"""
Exception taxonomy for the chat pipeline.

Only ConfigurationError, GraphQueryError and GenerationError cross the
pipeline boundary; cache and enrichment failures are absorbed where they
happen.
"""


class ChatPipelineError(Exception):
    """Base class for errors raised by the chat pipeline"""
    pass


class ConfigurationError(ChatPipelineError):
    """A required credential or connection string is missing"""
    pass


class GraphQueryError(ChatPipelineError):
    """The graph store failed to answer a traversal query"""
    pass


class GenerationError(ChatPipelineError):
    """The text generation provider failed or timed out"""
    pass


class EnrichmentParseError(ChatPipelineError):
    """Model output did not contain a usable enrichment JSON object"""
    pass


class ConversationNotFoundError(ChatPipelineError):
    """No conversation with this id exists for the calling user"""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id
