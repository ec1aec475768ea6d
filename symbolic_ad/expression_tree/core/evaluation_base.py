from abc import ABC, abstractmethod


class EvaluationBase(ABC):
  """Visitor over expression nodes, one callback per operator kind.

  Nodes dispatch through `Node.evaluate_with(visitor)`. Callbacks receive the
  child nodes themselves; implementations decide whether and in which order
  to descend, typically with `child.evaluate_with(self)`.
  """

  @abstractmethod
  def variable(self, node):
    pass

  @abstractmethod
  def constant(self, value: float):
    pass

  @abstractmethod
  def sin(self, argument):
    pass

  @abstractmethod
  def cos(self, argument):
    pass

  @abstractmethod
  def tan(self, argument):
    pass

  @abstractmethod
  def asin(self, argument):
    pass

  @abstractmethod
  def acos(self, argument):
    pass

  @abstractmethod
  def atan(self, argument):
    pass

  @abstractmethod
  def exp(self, argument):
    pass

  @abstractmethod
  def logarithm(self, argument):
    pass

  @abstractmethod
  def addition(self, a, b):
    pass

  @abstractmethod
  def subtraction(self, a, b):
    pass

  @abstractmethod
  def product(self, a, b):
    pass

  @abstractmethod
  def quotient(self, a, b):
    pass

  @abstractmethod
  def power(self, a, b):
    pass

  @abstractmethod
  def power_int(self, argument, exponent: int):
    pass
