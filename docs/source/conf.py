# Configuration file for the Sphinx documentation builder.
# sys.path.insert(0, os.path.abspath('..'))

import os
import re

# -- Project information -----------------------------------------------------

project = "lra_mbo"
copyright = "2024-2025, lra_mbo developers"
author = "lra_mbo developers"

# Read version from pyproject.toml
pyproject_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), '..', 'pyproject.toml')
with open(pyproject_path, 'r') as f:
    content = f.read()
    version_match = re.search(r'^version = ["\']([^"\']+)["\']', content, re.MULTILINE)
    if version_match:
        release = version_match.group(1)
    else:
        release = "0.1.0"

# General configuration
extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx_rtd_theme'
]

templates_path = ['_templates']
exclude_patterns = []

# HTML output options
html_theme = 'sphinx_rtd_theme'
html_title = 'lra_mbo Documentation'
