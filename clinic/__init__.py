"""Clinic application for the Klinik Sentosa backend.

This package contains the queue, patient, prescription and medicine
stores (relational and tree-structured), the services built on top of
them and the API routes used by the front-end pages.
"""
