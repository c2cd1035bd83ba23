"""
Resource managers package for templit.

This package contains managers that provision and release the external
resources a template integration test needs: Bigtable tables and staged
Cloud Storage artifacts.
"""
