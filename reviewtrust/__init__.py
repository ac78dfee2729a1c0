# Review Trust - Anonymous Review Trust Pipeline
# ===============================================
# Accepts unauthenticated reviews, blocks duplicates and abuse, scores spam,
# gates publication behind an email-ownership proof and alerts business owners
# when their rating drops.
#
# ARCHITECTURE LAYERS:
# - Presentation:   FastAPI app, uvicorn entry point, outbox relay runner
# - Application:    Component services and the pipeline orchestrator
# - Domain:         Pure business logic (no external dependencies)
# - Infrastructure: External services (SQLite store, email/push providers)
#
# Infrastructure components sit behind the ports in application/ports.py,
# so the pipeline runs against any store or notifier that implements them.

__version__ = "1.0.0"
