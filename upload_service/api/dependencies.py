from fastapi import Request
from upload_service.services.upload_coordinator import UploadCoordinator

def get_coordinator(request: Request) -> UploadCoordinator:
    return request.app.state.coordinator
