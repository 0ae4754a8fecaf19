"""
Upload, download and delete record attachments through the REST endpoint.
"""

import base64
import re
from typing import List

from ..constants import ATTACHMENT_PATH
from ..context import ExecutionContext
from ..models import BinaryData, ExecutionItem
from . import RECORD, run_items


CONTENT_DISPOSITION_FILENAME = re.compile(r'filename="?([^"]+)"?')


def filename_from_disposition(header, default: str) -> str:
    if header:
        match = CONTENT_DISPOSITION_FILENAME.search(header)
        if match and match.group(1):
            return match.group(1)
    return default


async def _upload_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    op = ctx.operation_context(index, required=RECORD)
    property_name = ctx.get_parameter('binaryPropertyName', index, 'data')
    binary = ctx.get_binary(index, property_name)

    file_name = ctx.get_options(index).get('fileName') or binary.file_name or 'file'
    content = base64.b64decode(binary.data)
    files = {'file': (file_name, content, binary.mime_type or 'application/octet-stream')}
    data = {
        'AttachmentType': 'File',
        'ObjectID': op.rec_id,
        'ObjectType': f"{ctx.get_parameter('businessObject', index).lower()}#",
    }

    response = await ctx.client.upload_attachment(files, data)

    # The service answers with one status entry per uploaded file
    if isinstance(response, list) and response:
        result = response[0] if isinstance(response[0], dict) else {}
        uploaded = bool(result.get('IsUploaded', False))
        return [ExecutionItem(data={
            'success': uploaded,
            'fileName': result.get('FileName'),
            'attachmentId': result.get('Message'),
            'message': 'File uploaded successfully' if uploaded else result.get('Message'),
        })]
    return [ExecutionItem(data={
        'success': False,
        'message': 'Unexpected response format',
        'response': response,
    })]


async def _get_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    ctx.require(index, 'recId')
    rec_id = ctx.get_parameter('recId', index)
    content, headers = await ctx.client.download_attachment(rec_id)
    file_name = filename_from_disposition(headers.get('content-disposition'), f"attachment_{rec_id}")
    binary = BinaryData(
        data=base64.b64encode(content).decode('ascii'),
        mime_type=headers.get('content-type') or 'application/octet-stream',
        file_name=file_name,
    )
    return [ExecutionItem(data={'attachmentId': rec_id}, binary={'data': binary})]


async def _delete_item(ctx: ExecutionContext, index: int) -> List[ExecutionItem]:
    ctx.require(index, 'recId')
    rec_id = ctx.get_parameter('recId', index)
    await ctx.client.request('DELETE', f"{ATTACHMENT_PATH}/{rec_id}")
    return [ExecutionItem(data={
        'success': True,
        'message': 'Successfully deleted attachment',
        'recId': rec_id,
    })]


async def upload(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _upload_item)


async def get(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _get_item)


async def delete(ctx: ExecutionContext) -> List[ExecutionItem]:
    return await run_items(ctx, _delete_item)
