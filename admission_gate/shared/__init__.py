"""admission_gate/shared — models, condition helpers, errors and config."""
