from fastapi import Request

from boardpilot.application.factory import Workflow


def get_workflow(request: Request) -> Workflow:
    return request.app.state.workflow
