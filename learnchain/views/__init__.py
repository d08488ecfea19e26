"""
Interactive views: input events, the view state machine and Rich rendering.
"""
