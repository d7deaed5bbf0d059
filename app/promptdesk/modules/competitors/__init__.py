"""
Competitors module: competitor notes per owner (JSON API under /api/competitor).
"""
