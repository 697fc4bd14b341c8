"""
HTTP gateway that translates source snippets through an external
OpenAI-compatible provider and keeps a browsable history.
"""
