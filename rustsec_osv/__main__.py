"""
The `python -m rustsec_osv` entrypoint.
"""

if __name__ == "__main__":  # pragma: no cover
    from rustsec_osv._cli import export

    export()
