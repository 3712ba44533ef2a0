"""Terraform module publishing."""
