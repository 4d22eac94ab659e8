"""Pricing Council — segmentation, unit economics and council-evaluated pricing decisions."""
