"""Descriptor and query models, analysis, cost estimation and context"""
