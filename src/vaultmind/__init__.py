"""VaultMind agent core: policy-enforced natural-language-to-SQL over DuckDB."""

__version__ = "0.1.0"
