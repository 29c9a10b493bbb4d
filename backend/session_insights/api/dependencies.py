from fastapi import Request

from session_insights.services.session_pipeline import SessionPipeline


def get_pipeline(request: Request) -> SessionPipeline:
    return request.app.state.pipeline
