"""
Core algorithm tests for fuzzy_markov.

- Log-domain math
- Differentiable results and R-operator propagation
- Transition block and batch interface
- Sequence runner
"""
