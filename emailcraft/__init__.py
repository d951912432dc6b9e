"""
Emailcraft Quality Consultant

An LLM-driven quality loop for marketing email templates:
1. Scores emails on five dimensions with Claude
2. Recommends prioritized fixes
3. Turns fixes into validated tool commands and runs them
4. Repeats until the quality gate passes or budgets run out
"""

__version__ = "0.1.0"
