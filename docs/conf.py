# Sphinx configuration for the repo-replicator API reference

import os
import sys

sys.path.insert(0, os.path.abspath('../src'))

from repo_replicator import __version__  # noqa: E402

project = 'repo-replicator'
author = 'repo-replicator contributors'
copyright = '2024, ' + author
version = release = __version__

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.intersphinx',
    'sphinx_autodoc_typehints',
]

exclude_patterns = ['_build']
html_theme = 'sphinx_rtd_theme'

autodoc_member_order = 'bysource'
autodoc_default_options = {'members': True, 'show-inheritance': True}
always_document_param_types = True

# Docstrings use the Google "Raises:" style.
napoleon_google_docstring = True
napoleon_numpy_docstring = False

intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'requests': ('https://requests.readthedocs.io/en/latest/', None),
    'pydantic': ('https://docs.pydantic.dev/latest/', None),
    'github': ('https://pygithub.readthedocs.io/en/stable/', None),
}
