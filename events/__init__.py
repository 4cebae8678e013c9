"""events/ -- In-process event bus and its subscribers.

Layer rule: events/ may import from core/ and auth/ (for message builders).
It does NOT import from api/.
"""
