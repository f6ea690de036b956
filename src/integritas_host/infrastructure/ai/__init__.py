"""AI infrastructure: versioned prompts for the chat host."""
