"""Listing harvester"""
