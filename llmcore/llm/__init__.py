"""LLM execution core: types, adapters, retry, streaming, cache, limiter, executors."""
