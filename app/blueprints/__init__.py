"""
Content Operations Dashboard
Blueprint registry.

    health_bp             /api/v1/health
    workflow_template_bp  workflow templates per project
    episode_bp            episode scheduling and milestones
    content_bp            content versions, approval and feedback
    topic_bp              flagged stories, clusters and topic proposals
"""
