"""
EmbedSearch LLM integration

Modules:
    providers — OpenAI-compatible client factory and error translation
    answer    — AnswerGenerator (answer synthesis, ingestion summaries)
"""
