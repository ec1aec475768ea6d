from typing import Optional


class SymbolicADError(Exception):
  """Base class for errors raised by the expression engine"""


class DomainError(SymbolicADError, ArithmeticError):
  """A primal or derivative value left the domain of its operator.

  Raised where the failure happens and propagated unchanged through the
  recursive evaluation; this is the RET_NAN outcome of a numeric call.
  """

  def __init__(self, operator_name, value: float, slot: Optional[int] = None):
    self.operator_name = operator_name
    self.value = value
    self.slot = slot
    where = f" at slot {slot}" if slot is not None else ""
    super().__init__(f"{operator_name.name} undefined for argument {value!r}{where}")
