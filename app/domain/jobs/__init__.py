"""Jobs domain - lifecycle state machine, repository and HTTP router"""
