"""
NodeFlow - An async workflow execution engine.

Run directed graphs of input, LLM, tool, agent and output nodes against a
single text input, in batch or as a stream of progress events.
"""

__version__ = "1.0.0"
