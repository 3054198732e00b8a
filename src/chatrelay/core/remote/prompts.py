"""Prompt text for context-snapshot generation."""

SNAPSHOT_SYSTEM_PROMPT = """You are an expert in context compression. Your job is to compress a long conversation into a high-fidelity "state snapshot".
The snapshot must contain:
1. **Core goal**: the ultimate objective currently being worked on.
2. **Settled decisions**: problems already solved, chosen technologies, agreed logic.
3. **Key code and variables**: important names, short descriptions of complex logic, essential code fragments.
4. **Next steps**: what remains to be done.
5. **New knowledge**: facts or preferences that emerged during the conversation.

Requirements:
- Use minimal but precise language.
- Another AI reading the snapshot must be able to resume the conversation as if it had never been interrupted.
- Leave out pleasantries, repeated explanations and redundant process."""

COMPRESSION_REQUEST = "Compress the following conversation with high fidelity:\n\n"


def build_user_content(content: str) -> str:
    return f"{COMPRESSION_REQUEST}{content}"


def build_handoff_prompt(filename: str) -> str:
    """Prompt asking another model to build the snapshot from an uploaded export."""
    return (
        f'I have uploaded a conversation transcript named "{filename}". Read the file and '
        'produce a high-fidelity "context snapshot" containing:\n\n'
        "1. **Core goal**: the ultimate problem currently being solved.\n"
        "2. **Settled decisions**: problems already solved and the chosen approach.\n"
        "3. **Key code and variables**: important names and core logic.\n"
        "4. **Next steps**: what remains to be done.\n"
        "5. **New knowledge**: special preferences or discoveries from the conversation.\n\n"
        "Keep it extremely concise so a new conversation can pick up seamlessly."
    )
