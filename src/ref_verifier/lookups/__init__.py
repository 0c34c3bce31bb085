"""Lookup programs bundled with ref_verifier.

Each program takes one positional query argument, prints exactly one JSON
document on stdout and exits 0; on failure it prints a message prefixed
with the error marker on stderr and exits non-zero. Progress logging goes
to stderr.

- check_paper.py: search arXiv, Semantic Scholar, Crossref and retraction notices
- doi_citation.py: paper details for a DOI
- isbn_citation.py: book details for an ISBN
"""
