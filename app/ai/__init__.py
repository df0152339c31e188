"""
Content Operations Dashboard
AI module.

Submodules:
    - clustering: story clustering and topic-proposal providers
      (Anthropic Claude, local deterministic stub)
"""
