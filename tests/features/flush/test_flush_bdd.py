"""BDD tests for the flush cycle."""

import pytest
from pytest_bdd import scenarios

scenarios(".")

pytestmark = [pytest.mark.tier(2)]
