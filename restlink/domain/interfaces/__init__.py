"""Domain Interfaces (Ports):

Defines the contracts (Abstract Base Classes) the core depends on. The
infrastructure layer supplies concrete adapters; tests supply fakes.
"""
