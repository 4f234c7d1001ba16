"""
photoledger CLI Module

Command-line front end for the client work queue using Typer.

Available commands:
- add: Queue image files
- list: Show queued items and their status
- process: Submit pending items one at a time
- remove: Drop one item
- clear: Empty the queue

Example usage:
    photoledger-queue add house.jpg kitchen.jpg
    photoledger-queue process --mode hdr --token $TOKEN
"""
