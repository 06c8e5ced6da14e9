"""Smart research assistant.

Accepts a natural-language research query, researches it with an OpenAI
chat model, files the findings as a GitHub issue through the Pica
integration platform and streams progress to the browser over
Server-Sent Events.
"""
