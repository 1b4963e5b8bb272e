"""assetpipe command line interface"""
