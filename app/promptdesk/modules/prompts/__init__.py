"""
Prompt templates module.

Scope:
- Search/detail of public prompts (anonymous allowed)
- Create prompts, toggle likes, add comments (login required)
- Preview: fill {{placeholder}} slots with caller-supplied values
"""
