import pytest
import redfa

@pytest.fixture(autouse=True)
def reset_program_data():
    redfa.ProgramData._reset_flags()
    yield
    redfa.ProgramData._reset_flags()
