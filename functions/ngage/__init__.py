"""
Ngage service package.

Team competitions, events, judging and leaderboards over Firestore, exposed
through a FastAPI application and a background worker.
"""
