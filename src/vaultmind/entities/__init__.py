"""
Entities package.

Each subdirectory owns one stage of the agent:
- query_validator/: read-only SQL policy
- schema_discovery/: schema digest for prompts and column resolution
- rewriter/: intent and risk directive per question
- query_router/: archetype classification
- query_builder/: template SQL and column roles
- tool_executor/: freeform NL2SQL via tool calling, with SQL repair
- supervisor/: budget and cancellation
- skills/: analysis.v1 and nl2sql.v1
- workflow/: dependency container and ``process_query``
- engine/, llm/: DuckDB and OpenAI adapters
"""
