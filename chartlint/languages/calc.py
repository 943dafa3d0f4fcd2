"""Left-recursive, ambiguous arithmetic: ``expr := NUMBER | expr "+" expr``."""

GRAMMAR = r'''
(grammar calc
  (token NUMBER "[0-9]+")
  (rule expr
    NUMBER
    (expr "+" expr)))
'''
