"""
Clinic Intake Agent Tests

Running Tests:
    # Install with test extras
    pip install -e ".[test]"

    # Run all unit tests
    pytest tests/unit -v

    # Run one module
    pytest tests/unit/test_conversation_flow.py -v

Test Coverage:
    - Interpretation rules and LLM sanitising
    - Clinical field extraction and BMI triage
    - Session models, stores and per-contact locking
    - Availability, booking and the Calendar client
    - Conversation state machine and dialogue engine
    - WhatsApp transport and HTTP routes

No test talks to Redis, Google Calendar, Anthropic or Meta; collaborators
are mocked.
"""
