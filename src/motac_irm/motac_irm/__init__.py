"""MOTAC Integrated Resource Management package.

This package is organized by feature modules (users, grades, equipment,
email_applications, loan_applications, fingerprints, ...) with a thin Flask
controller layer over service/repository layers.
"""
