"""
Test suite for COPAC.

This package contains all tests organized by component:
- test_algorithms/: eigen-decomposition, filters, PCA, clustering, COPAC
- top level: dataset, configuration, command line
"""
