from echo_brain.use_cases.budget import Budget

def test_budget_max_input_tokens():
    b = Budget(max_context_tokens=1000, reserve_output_tokens=200, safety_margin_tokens=50)
    assert b.max_input_tokens == 750

def test_budget_remaining_never_negative():
    b = Budget(max_context_tokens=300, reserve_output_tokens=100, safety_margin_tokens=0)
    assert b.remaining(50) == 150
    assert b.remaining(500) == 0

def test_budget_tiny_window_clamps_to_zero():
    b = Budget(max_context_tokens=10, reserve_output_tokens=100)
    assert b.max_input_tokens == 0
