"""MCP (Model Context Protocol) client side of the host.

The host consumes a single tool server: its tools are offered to the model,
its resources ground documentation answers.
"""
