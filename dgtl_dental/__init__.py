"""DGTL Dental: chat assistants for dental practice websites.

Architecture Overview
=====================

Every chat surface (the landing-page demo, the widget embedded on a
practice's site, the staging preview) is one :class:`WidgetSession`
driven by a pluggable backend:

1. **templates**: keyword rules over the practice's own facts answer
   the common questions (hours, location, insurance, ...) instantly.
   The first matching rule wins.

2. **remote completion**: anything else goes to the hosted completion
   endpoint, either as one blocking JSON call or as an event stream
   decoded incrementally.

Server side, the same two steps run as a LangGraph StateGraph
(templates → assistant) with per-session memory.

Key Design Decisions
--------------------
- **LLM**: Claude via the Anthropic API; a faster model streams the demo.
- **Failures never reach the patient**: an upstream error becomes a fixed
  fallback message pointing at the practice phone number.
- **Persistence**: SQLAlchemy over SQLite by default. Practice rows carry
  a version counter so concurrent writers detect each other.
- **Billing**: Stripe Checkout; the practice stays ``pending`` until the
  billing webhook (external) activates it.
- **Dual Interface**: FastAPI server (production) + CLI (development).

Package Structure
-----------------
- ``dgtl_dental/models.py``: messages, transcript, state and status enums
- ``dgtl_dental/chat/``: practice facts, templates, widget session, guided intake
- ``dgtl_dental/signup.py``: three-step signup pipeline
- ``dgtl_dental/admin.py``: superadmin console and sessions
- ``dgtl_dental/agent.py``: LangGraph StateGraph definition
- ``dgtl_dental/prompts.py``: system prompts
- ``dgtl_dental/services/``: completion client, store, Stripe, Resend, metrics
- ``dgtl_dental/api/``: FastAPI routes and Pydantic schemas
- ``dgtl_dental/server.py``: FastAPI application
- ``dgtl_dental/main.py``: CLI
"""
