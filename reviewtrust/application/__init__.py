# Application Layer
# =================
# Component services (duplicate guard, tokens, ratings, alerts, outbox)
# and the pipeline orchestrator that sequences them. Talks to the outside
# world only through the ports in ports.py.
