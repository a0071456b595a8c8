"""Prompt-driven workflow engine over a graph of operator regions.

An intent classifier turns each prompt into an (action, confidence) pair
that selects both the next adjacent region and the operator to run in it.
Regions may wrap a whole inner manifold, making the graph hierarchical.
"""
